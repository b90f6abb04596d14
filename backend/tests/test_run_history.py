"""Tests for the run history log."""

from datetime import timedelta

from publisher.models.schemas import (
    PipelineRunResult,
    PipelineStep,
    PublishResult,
    VideoRecord,
    utc_now,
)
from publisher.services.run_history import (
    NO_PENDING_VIDEOS,
    PREVIEW,
    UPLOAD_COMPLETED,
    UPLOAD_FAILED,
    HistoryEntry,
    RunHistory,
    action_for,
)


def completed_run() -> PipelineRunResult:
    return PipelineRunResult(
        success=True,
        step=PipelineStep.COMPLETE,
        record=VideoRecord(record_id="rec-1", title="Sermon"),
        publish=PublishResult(video_id="yt-1", url="https://www.youtube.com/watch?v=yt-1", privacy="public"),
    )


class TestActionFor:
    """Test action naming."""

    def test_actions(self):
        assert action_for(completed_run()) == UPLOAD_COMPLETED
        assert action_for(PipelineRunResult(success=True, step=PipelineStep.NO_VIDEO)) == NO_PENDING_VIDEOS
        assert action_for(PipelineRunResult(success=True, step=PipelineStep.PREVIEW)) == PREVIEW
        assert action_for(PipelineRunResult(success=False, step=PipelineStep.FETCH)) == UPLOAD_FAILED


class TestRunHistory:
    """Test persistence and the recent upload check."""

    def test_record_and_read_back(self, tmp_path):
        history = RunHistory(tmp_path / "logs" / "history.jsonl")

        entry = history.record_run(completed_run())

        assert entry.details == "https://www.youtube.com/watch?v=yt-1"
        assert history.entries() == [entry]
        assert history.last_upload().record_id == "rec-1"

    def test_failed_run_not_an_upload(self, tmp_path):
        history = RunHistory(tmp_path / "history.jsonl")

        history.record_run(PipelineRunResult(success=False, step=PipelineStep.PUBLISH, error="quota"))

        assert history.entries()[0].details == "quota"
        assert history.last_upload() is None
        assert history.last_upload_status(2).upload_executed_recently is False

    def test_corrupt_lines_skipped(self, tmp_path):
        path = tmp_path / "history.jsonl"
        path.write_text("not json\n\n" + HistoryEntry(action=UPLOAD_COMPLETED).model_dump_json() + "\n")

        assert len(RunHistory(path).entries()) == 1

    def test_old_upload_not_recent(self, tmp_path):
        """Uploads outside the window are reported but not recent."""
        history = RunHistory(tmp_path / "history.jsonl")
        old = utc_now() - timedelta(hours=5)
        history.append(HistoryEntry(timestamp=old, action=UPLOAD_COMPLETED, details="url"))

        status = history.last_upload_status(hours=2)

        assert status.upload_executed_recently is False
        assert status.last_upload == old

    def test_recent_upload(self, tmp_path):
        history = RunHistory(tmp_path / "history.jsonl")
        history.record_run(completed_run())

        status = history.last_upload_status(hours=2)

        assert status.upload_executed_recently is True
        assert "yt-1" in status.message

    def test_missing_file(self, tmp_path):
        assert RunHistory(tmp_path / "missing.jsonl").entries() == []

"""Tests for the command line interface."""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from conftest import FakeFetcher, drive_link, make_item
from publisher.cli import build_parser, main
from publisher.models.schemas import RecordStatus, utc_now
from publisher.services.errors import ConfigurationError
from publisher.services.pipeline import PipelineOrchestrator
from publisher.services.run_history import RunHistory


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep main() from replacing the test run's log handlers."""
    monkeypatch.setattr("publisher.cli.setup_logging", lambda settings: None)


@pytest.fixture
def factory(store, source, target, settings, publish_config):
    """Orchestrator factory over the in-memory services."""

    @asynccontextmanager
    async def open_orchestrator(run_settings):
        yield PipelineOrchestrator(
            store, source, target,
            settings=run_settings,
            fetcher=FakeFetcher(run_settings),
            publish_config=publish_config,
        )

    return open_orchestrator


class TestParser:
    """Test argument parsing."""

    def test_run_flags(self):
        args = build_parser().parse_args(["run", "--preview", "--no-sync", "--limit", "3", "--force"])

        assert args.command == "run"
        assert args.preview is True
        assert args.no_sync is True
        assert args.limit == 3
        assert args.force is True

    def test_limit_must_be_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync", "--limit", "0"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Test exit codes and side effects of each subcommand."""

    def test_run_success(self, factory, settings, store, pending_record, capsys):
        """A published video exits 0 and is logged to history."""
        code = main(["run", "--no-sync"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert store.records[pending_record.record_id].status == RecordStatus.UPLOADED
        assert "https://www.youtube.com/watch?v=yt-123" in capsys.readouterr().out
        assert RunHistory(settings.history_file).last_upload() is not None

    def test_run_prints_progress(self, factory, settings, pending_record, capsys):
        """Each whole percent is printed once per step."""
        main(["run", "--no-sync"], settings=settings, open_orchestrator=factory)

        lines = [line.strip() for line in capsys.readouterr().out.splitlines()]
        assert "[fetch] 31% - Downloading: 50% (550 Bytes/1.07 KB)" in lines
        assert "[complete] 100% - Published: https://www.youtube.com/watch?v=yt-123" in lines
        assert sum(line.startswith("[fetch] 54%") for line in lines) == 1

    def test_run_quiet_prints_no_progress(self, factory, settings, pending_record, capsys):
        main(["run", "--no-sync", "--quiet"], settings=settings, open_orchestrator=factory)

        assert "[fetch]" not in capsys.readouterr().out

    def test_run_nothing_pending_exits_zero(self, factory, settings, capsys):
        code = main(["run"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert "No pending video" in capsys.readouterr().out

    def test_run_failure_exits_one(self, factory, settings, source):
        source.fail = True

        assert main(["run"], settings=settings, open_orchestrator=factory) == 1

    def test_preview_writes_no_history(self, factory, settings, store, pending_record):
        """Preview runs leave both the store and the history untouched."""
        code = main(["run", "--preview"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert store.records[pending_record.record_id].status == RecordStatus.PENDING
        assert RunHistory(settings.history_file).entries() == []

    def test_sync_preview(self, factory, settings, source, store, capsys):
        source.items = [make_item("id-1", "New.mp4")]

        code = main(["sync", "--preview"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert store.records == {}
        output = capsys.readouterr().out
        assert "1 would be created" in output
        assert "+ New" in output

    def test_sync_with_errors_exits_one(self, factory, settings, source, store):
        source.items = [make_item("id-1", "Broken.mp4")]
        store.fail_create_titles.add("Broken")

        assert main(["sync"], settings=settings, open_orchestrator=factory) == 1

    def test_reset_errors(self, factory, settings, store, capsys):
        store.add(title="Old", source_link=drive_link("o"), status=RecordStatus.ERROR,
                  error_at=utc_now() - timedelta(days=30))

        code = main(["reset-errors", "--days", "7"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert "1 record(s) reset" in capsys.readouterr().out

    def test_recover(self, factory, settings, store, capsys):
        store.add(title="Stuck", status=RecordStatus.PROCESSING,
                  claimed_at=utc_now() - timedelta(hours=3))

        code = main(["recover", "--minutes", "60"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert "1 stuck record(s)" in capsys.readouterr().out

    def test_stats(self, factory, settings, pending_record, capsys):
        code = main(["stats"], settings=settings, open_orchestrator=factory)

        assert code == 0
        assert "Pending:    1" in capsys.readouterr().out

    def test_configuration_error_exits_one(self, settings, capsys):
        """Missing credentials are reported without a traceback."""

        @asynccontextmanager
        async def unconfigured(run_settings):
            raise ConfigurationError("Missing required settings: NOTION_TOKEN")
            yield

        code = main(["stats"], settings=settings, open_orchestrator=unconfigured)

        assert code == 1
        assert "NOTION_TOKEN" in capsys.readouterr().out

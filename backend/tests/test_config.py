"""Tests for settings, publish config and logging setup."""

import logging

import pytest

from publisher.config import Settings, load_publish_config
from publisher.logging_config import (
    StructuredFormatter,
    current_record_id,
    record_log_context,
    setup_logging,
    short_logger_name,
)
from publisher.services.errors import ConfigurationError


class TestSettings:
    """Test credential checks."""

    def test_missing_credentials_listed(self):
        settings = Settings(_env_file=None, notion_token="", notion_database_id="db")

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_required("notion")

        assert exc_info.value.missing_keys == ["NOTION_TOKEN"]

    def test_configured_groups_pass(self, settings):
        settings.validate_required("notion", "google", "drive", "api")


class TestPublishConfig:
    """Test publish.yaml loading."""

    def test_bundled_config(self):
        """The shipped config has a dated footer and automatic tags."""
        config = load_publish_config(Settings(_env_file=None))

        assert "{date}" in config["description_footer"]
        assert "auto-publisher" in config["auto_tags"]

    def test_missing_file_is_empty(self, tmp_path):
        assert load_publish_config(Settings(_env_file=None, config_dir=tmp_path)) == {}

    def test_custom_file(self, tmp_path):
        (tmp_path / "publish.yaml").write_text("auto_tags:\n  - church\n", encoding="utf-8")

        config = load_publish_config(Settings(_env_file=None, config_dir=tmp_path))

        assert config == {"auto_tags": ["church"]}


class TestLogging:
    """Test logging setup."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        logging.getLogger("publisher.services.fetcher").setLevel(logging.NOTSET)

    def test_module_override(self):
        settings = Settings(_env_file=None, log_level="WARNING", log_level_fetcher="DEBUG")

        setup_logging(settings)

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("publisher.services.fetcher").level == logging.DEBUG

    def test_structured_format(self):
        record = logging.LogRecord(
            "publisher.services.fetcher", logging.INFO, __file__, 1, "Downloaded", None, None
        )

        line = StructuredFormatter().format(record)

        assert "| INFO     | fetcher" in line
        assert line.endswith("Downloaded")

    @pytest.mark.parametrize("name,expected", [
        ("publisher.services.clients.notion_client", "notion_client"),
        ("publisher.services.pipeline.orchestrator", "pipeline.orchestrator"),
        ("publisher.services.lifecycle", "lifecycle"),
        ("publisher.api.routes", "api.routes"),
        ("publisher.cli", "cli"),
        ("httpx", "httpx"),
    ])
    def test_short_logger_names(self, name, expected):
        assert short_logger_name(name) == expected


class TestRecordLogContext:
    """Test record tagging of log lines."""

    @staticmethod
    def make_record(message: str) -> logging.LogRecord:
        return logging.LogRecord(
            "publisher.services.lifecycle", logging.INFO, __file__, 1, message, None, None
        )

    def test_lines_tagged_inside_context(self):
        with record_log_context("rec-7"):
            line = StructuredFormatter().format(self.make_record("Claimed"))

        assert line.endswith("| [rec-7] Claimed")

    def test_no_tag_outside_context(self):
        with record_log_context("rec-7"):
            pass

        line = StructuredFormatter().format(self.make_record("Sync done"))

        assert current_record_id() is None
        assert "[" not in line.split("|")[-1]

    def test_nested_context_restores_outer_id(self):
        with record_log_context("rec-1"):
            with record_log_context("rec-2"):
                assert current_record_id() == "rec-2"
            assert current_record_id() == "rec-1"

    def test_context_reset_on_error(self):
        with pytest.raises(RuntimeError):
            with record_log_context("rec-1"):
                raise RuntimeError("boom")

        assert current_record_id() is None

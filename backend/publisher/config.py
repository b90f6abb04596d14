"""
Application configuration and settings.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

from publisher.services.errors import ConfigurationError


# Download mirrors for a Drive file, tried in order
DEFAULT_CANDIDATE_TEMPLATES = [
    "https://drive.google.com/uc?export=download&id={source_id}",
    "https://docs.google.com/uc?export=download&id={source_id}",
    "https://drive.usercontent.google.com/download?id={source_id}&export=download",
    "https://drive.google.com/uc?id={source_id}&export=download",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Notion (record store)
    notion_token: str = ""
    notion_database_id: str = ""
    notion_url: str = "https://api.notion.com"
    notion_version: str = "2022-06-28"
    notion_timeout: float = 30.0

    # Google (storage source + publish target)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_drive_folder_id: str = ""
    drive_api_url: str = "https://www.googleapis.com/drive/v3"
    youtube_api_url: str = "https://www.googleapis.com/youtube/v3"
    youtube_upload_url: str = "https://www.googleapis.com/upload/youtube/v3"

    # Fetch strategy
    temp_dir: Path = Path("temp")
    candidate_templates: list[str] = DEFAULT_CANDIDATE_TEMPLATES
    fetch_timeout: float = 60.0
    fetch_chunk_size: int = 1024 * 1024
    fetch_size_tolerance: int = 1024

    # Publishing
    publish_timeout: float = 3600.0
    publish_language: str = "pt"

    # Lifecycle
    error_reset_days: int = 7
    stuck_processing_minutes: int = 120
    max_error_length: int = 2000
    sync_create_delay: float = 0.5

    # HTTP trigger
    api_secret: str = ""
    recent_upload_hours: int = 2
    history_file: Path = Path("publisher_history.jsonl")

    # Paths
    config_dir: Path = Path(__file__).resolve().parent.parent / "config"

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_fetcher: str | None = None
    log_level_pipeline: str | None = None
    log_level_lifecycle: str | None = None
    log_level_clients: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_required(self, *groups: str) -> None:
        """
        Check that credentials for the given collaborator groups are set.

        Args:
            groups: Any of "notion", "google", "drive", "api"

        Raises:
            ConfigurationError: If any required setting is empty
        """
        required = {
            "notion": ["notion_token", "notion_database_id"],
            "google": ["google_client_id", "google_client_secret", "google_refresh_token"],
            "drive": ["google_drive_folder_id"],
            "api": ["api_secret"],
        }

        missing: list[str] = []
        for group in groups:
            for key in required[group]:
                if not getattr(self, key):
                    missing.append(key.upper())

        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_publish_config(settings: Settings | None = None) -> dict:
    """
    Load publishing defaults from config/publish.yaml.

    Holds the description footer, automatic tags and optional
    category overrides. A missing file yields an empty config.

    Args:
        settings: Optional settings instance

    Returns:
        Publish configuration dictionary
    """
    if settings is None:
        settings = get_settings()

    config_path = settings.config_dir / "publish.yaml"
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}

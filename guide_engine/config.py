from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Engine settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    guide_sources: Annotated[list[str], NoDecode] = []
    guide_refresh_cron: str = "*/30 * * * *"  # Every 30 minutes
    guide_refresh_misfire_grace_sec: int = 600
    refresh_max_concurrency: int = 4
    refresh_on_startup: bool = True

    schedule_retention_sec: int = 3600  # Cached schedules go stale after 1 hour
    honor_timezone_offset: bool = True
    guide_timezone: str = "UTC"  # Zone for broadcast times without offset
    next_programs_default_count: int = 5
    parse_timeout_sec: int = 120  # XMLTV parsing timeout, 0 disables timeout

    fetch_timeout_sec: float = 30.0
    fetch_max_retries: int = 3
    fetch_backoff_factor: float = 2.0

    blob_store_backend: Literal["database", "file", "memory"] = "database"
    database_path: str = "./data/guide.db"
    blob_directory: str = "./data/blobs"
    snapshot_key_prefix: str = "playcast_epg"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("guide_sources", mode="before")
    @classmethod
    def parse_guide_sources(cls, value):
        """Parse comma-separated URLs or list."""
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            return [url.strip() for url in value.split(",") if url.strip()]
        if isinstance(value, (list, tuple)):
            return list(value)
        return []

    @field_validator("guide_sources", mode="after")
    @classmethod
    def validate_guide_sources(cls, value):
        """Validate guide source URLs are HTTP/HTTPS."""
        for url in value:
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"Guide source URL must be HTTP/HTTPS: {url}")
        return value

    @field_validator("guide_timezone")
    @classmethod
    def validate_guide_timezone(cls, value: str) -> str:
        """Validate timezone string"""
        if value == "UTC":
            return value
        try:
            ZoneInfo(value)
            return value
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(
                f"Invalid timezone: {value}. Must be a valid IANA timezone (e.g., 'Europe/London') or 'UTC'"
            ) from exc

    @field_validator(
        "schedule_retention_sec",
        "next_programs_default_count",
        "fetch_max_retries",
        "refresh_max_concurrency",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("parse_timeout_sec", "guide_refresh_misfire_grace_sec")
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        """Ensure timeouts and grace periods are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("fetch_timeout_sec")
    @classmethod
    def validate_fetch_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("fetch_timeout_sec must be > 0")
        return value

    @field_validator("fetch_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, value: float) -> float:
        """Ensure the backoff multiplier is at least 1."""
        if value < 1:
            raise ValueError("fetch_backoff_factor must be >= 1")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("guide_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_guide_configuration(self):
        """Validate cross-field configuration."""
        if not self.guide_sources:
            logger.warning(
                "No guide sources configured - scheduled refresh will not retrieve any data"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Guide Sources: %s configured", len(self.guide_sources))
        logger.info("  Refresh Schedule: %s", self.guide_refresh_cron)
        logger.info("  Refresh Misfire Grace: %ss", self.guide_refresh_misfire_grace_sec)
        logger.info("  Schedule Retention: %ss", self.schedule_retention_sec)
        logger.info(
            "  Broadcast Offsets: %s (default zone %s)",
            "honored" if self.honor_timezone_offset else "ignored",
            self.guide_timezone,
        )
        logger.info(
            "  Parse Timeout: %s",
            f"{self.parse_timeout_sec}s" if self.parse_timeout_sec else "disabled",
        )
        logger.info(
            "  Fetch: timeout=%.1fs retries=%s backoff=%.1f",
            self.fetch_timeout_sec,
            self.fetch_max_retries,
            self.fetch_backoff_factor,
        )
        logger.info("  Blob Store: %s", self.blob_store_backend)


settings = CustomSettings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

from typing import Literal
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    playlist_url: str | None = None
    guide_url: str | None = None

    playlist_refresh_interval_sec: int = 3600
    guide_refresh_interval_sec: int = 7200
    guide_refresh_cron: str | None = None  # Overrides the guide interval when set
    guide_lazy_load: bool = False  # Load the guide on first detail query instead of at startup
    playlist_retry_sec: int = 30
    guide_retry_sec: int = 300

    playlist_fetch_timeout_sec: float = 15.0
    guide_fetch_timeout_sec: float = 20.0
    feed_fetch_max_retries: int = 2
    guide_parse_timeout_sec: int = 120  # 0 disables timeout

    relay_timeout_sec: float = 20.0
    relay_max_redirects: int = 5
    relay_playback: bool = True  # Hand out /proxy URLs instead of origin URLs
    relay_allow_any_origin: bool = False  # Otherwise only hosts that catalog channels stream from
    public_base_url: str | None = None
    trust_forwarded_headers: bool = False  # Honour X-Forwarded-Proto/Host when building playback URLs

    channel_id_mode: Literal["position", "url"] = "position"
    default_category: str = "Other"
    default_description: str = "Live TV channel"
    default_poster: str = "https://i.imgur.com/x7KjTfW.png"
    catalog_page_size: int = 100

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("playlist_url", "guide_url", "public_base_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        """Treat empty strings as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("public_base_url")
    @classmethod
    def validate_public_base_url(cls, value: str | None) -> str | None:
        """Validate public base URL is HTTP/HTTPS."""
        if value is None:
            return value
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"public_base_url must be HTTP/HTTPS: {value}")
        return value.rstrip("/")

    @field_validator(
        "playlist_refresh_interval_sec",
        "guide_refresh_interval_sec",
        "playlist_retry_sec",
        "guide_retry_sec",
        "catalog_page_size",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure intervals and sizes are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("playlist_fetch_timeout_sec", "guide_fetch_timeout_sec", "relay_timeout_sec")
    @classmethod
    def validate_timeouts(cls, value: float, info) -> float:
        """Ensure network timeouts are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("feed_fetch_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("feed_fetch_max_retries must be >= 1")
        return value

    @field_validator("guide_parse_timeout_sec")
    @classmethod
    def validate_parse_timeout(cls, value: int) -> int:
        """Validate XML parsing timeout (seconds)."""
        if value < 0:
            raise ValueError("guide_parse_timeout_sec must be >= 0")
        return value

    @field_validator("relay_max_redirects")
    @classmethod
    def validate_max_redirects(cls, value: int) -> int:
        """Keep redirect following bounded."""
        if value < 0 or value > 20:
            raise ValueError("relay_max_redirects must be between 0 and 20")
        return value

    @field_validator("guide_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str | None) -> str | None:
        """Validate cron expression is valid."""
        if not value:
            return None
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_feed_configuration(self):
        """Validate cross-field configuration."""
        if not self.playlist_url:
            logger.warning("No playlist URL configured - catalog will be empty")

        if not self.guide_url:
            logger.warning("No guide URL configured - catalog entries will have no programme data")

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Playlist: %s", "configured" if self.playlist_url else "not configured")
        logger.info("  Guide: %s", "configured" if self.guide_url else "not configured")
        logger.info("  Playlist Refresh: every %ss", self.playlist_refresh_interval_sec)
        logger.info(
            "  Guide Refresh: %s",
            self.guide_refresh_cron or f"every {self.guide_refresh_interval_sec}s",
        )
        logger.info("  Guide Load: %s", "lazy" if self.guide_lazy_load else "at startup")
        logger.info(
            "  Retry Back-off: playlist=%ss guide=%ss",
            self.playlist_retry_sec,
            self.guide_retry_sec,
        )
        logger.info(
            "  Guide Parse Timeout: %s seconds",
            self.guide_parse_timeout_sec or "disabled",
        )
        logger.info(
            "  Relay: timeout=%.1fs max_redirects=%s playback=%s",
            self.relay_timeout_sec,
            self.relay_max_redirects,
            "proxied" if self.relay_playback else "direct",
        )
        logger.info("  Relay Origins: %s", "any" if self.relay_allow_any_origin else "catalog hosts only")
        logger.info(
            "  Public Base URL: %s",
            self.public_base_url or ("from forwarded headers" if self.trust_forwarded_headers else "from Host header"),
        )
        logger.info("  Channel IDs: %s", self.channel_id_mode)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

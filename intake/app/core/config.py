import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_chat_ids(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON when it looks like JSON, but tolerate a plain
    # comma separated list which is what most deployments use.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]

    # Deduplicate while preserving order.
    seen: set[str] = set()
    result: list[str] = []
    for part in parts:
        if part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    server_keepalive_timeout: int = 30

    # Admission control (token bucket per source address)
    rate_limit_rps: float = 1.0
    rate_limit_burst: int = 5
    rate_limit_ttl_seconds: float = 600.0  # Idle clients forgotten after 10 minutes
    rate_limit_sweep_interval_seconds: float = 120.0

    # Submission limits
    max_body_size: int = 256 * 1024  # Larger bodies are truncated, not rejected
    summary_max_length: int = 500

    # GeoIP enrichment (MaxMind City database). Empty disables enrichment.
    geoip_db_path: str = ""

    # Telegram notifier
    telegram_bot_token: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_webhook_url: str = ""
    telegram_webhook_secret: str = ""
    # NoDecode so a plain "123,456" value does not go through JSON parsing.
    telegram_chat_ids: Annotated[list[str], NoDecode] = []

    @field_validator("telegram_chat_ids", mode="before")
    @classmethod
    def decode_chat_ids(cls, v: Any) -> list[str]:
        return _parse_chat_ids(v)

    # HTTP client settings (outbound notifier calls)
    httpx_timeout: float = 10.0
    httpx_connect_timeout: float = 5.0
    httpx_read_timeout: float = 10.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_max_connections: int = 20
    httpx_max_keepalive_connections: int = 5

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator(
        "telegram_bot_token",
        "telegram_webhook_url",
        "telegram_webhook_secret",
        "geoip_db_path",
        mode="before",
    )
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("rate_limit_rps")
    @classmethod
    def validate_rate_positive(cls, v: float) -> float:
        """Validate the refill rate is positive."""
        if v <= 0:
            raise ValueError("rate_limit_rps must be positive")
        return v

    @field_validator("rate_limit_burst", "max_body_size", "summary_max_length")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "rate_limit_ttl_seconds",
        "rate_limit_sweep_interval_seconds",
        "httpx_timeout",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        "httpx_write_timeout",
        "httpx_pool_timeout",
    )
    @classmethod
    def validate_duration_positive(cls, v: float) -> float:
        """Validate durations and timeouts are positive."""
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @property
    def notifier_configured(self) -> bool:
        """True when a bot token and at least one recipient are set."""
        return bool(self.telegram_bot_token and self.telegram_chat_ids)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Global settings instance
settings = Settings()

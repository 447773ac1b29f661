from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FOOTERS = [
    "_Pesan ini dikirim oleh sistem dan tidak untuk dibalas._",
    "_Ini adalah pesan otomatis, mohon tidak membalas pesan ini._",
    "_Notifikasi otomatis dari sistem E-Absensi._",
    "_Mohon simpan nomor ini untuk menerima informasi selanjutnya._",
]


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./notifier.db")

    # Application
    debug: bool = Field(default=False)
    # Delivery trail directory; empty disables the file sink
    log_dir: str = Field(default="")

    # Delivery channel: "webhook" or "session"
    channel: str = Field(default="webhook")

    # Webhook relay
    webhook_base_url: str = Field(default="")
    webhook_token: str = Field(default="")
    webhook_timeout_seconds: float = Field(default=10.0)

    # Messaging gateway (session channel)
    session_gateway_url: str = Field(default="")
    session_gateway_token: str = Field(default="")

    # Background tasks
    scheduler_enabled: bool = Field(default=True)
    worker_enabled: bool = Field(default=True)


class NotificationsConfig:
    """Footer policy from config.yml."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.footers: list[str] = data.get("footers") or list(DEFAULT_FOOTERS)
        self.separator: str = data.get("separator", "-" * 32)


class RecipientsConfig:
    """Recipient address normalisation from config.yml."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.country_prefix: str = str(data.get("country_prefix", "62"))
        self.local_prefix: str = str(data.get("local_prefix", "0"))
        self.contact_suffix: str = data.get("contact_suffix", "@s.whatsapp.net")
        self.group_suffix: str = data.get("group_suffix", "@g.us")


class PacingConfig:
    """Randomized delay before each session send."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.min_delay_seconds: float = data.get("min_delay_seconds", 1.0)
        self.max_delay_seconds: float = data.get("max_delay_seconds", 5.0)


class WorkerConfig:
    """Delivery worker poll loop settings."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.poll_interval_seconds: float = data.get("poll_interval_seconds", 2.0)
        self.batch_size: int = data.get("batch_size", 20)
        self.concurrency: int = data.get("concurrency", 4)


class SweeperConfig:
    """Fail-safe sweeper settings."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.interval_seconds: int = data.get("interval_seconds", 300)
        # Defaults to the interval when not set explicitly
        self.stale_after_seconds: int = data.get("stale_after_seconds", self.interval_seconds)


class SessionConfig:
    """Session manager settings."""

    def __init__(self, data: dict[str, Any], settings: "Settings") -> None:
        self.gateway_url: str = settings.session_gateway_url
        self.gateway_token: str = settings.session_gateway_token
        self.client_id: str = data.get("client_id", "school-attendance-bot")
        self.request_timeout_seconds: float = data.get("request_timeout_seconds", 30.0)
        self.connect_timeout_seconds: float = data.get("connect_timeout_seconds", 120.0)
        self.reconnect_delay_seconds: float = data.get("reconnect_delay_seconds", 5.0)


class AppConfig:
    """Combined application configuration from .env and config.yml."""

    def __init__(self, path: Path | None = None) -> None:
        self.settings = Settings()
        self._load_yaml(path or Path("config.yml"))

    def _load_yaml(self, config_path: Path) -> None:
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        else:
            data = {}

        self.notifications = NotificationsConfig(data.get("notifications", {}))
        self.recipients = RecipientsConfig(data.get("recipients", {}))
        self.pacing = PacingConfig(data.get("pacing", {}))
        self.worker = WorkerConfig(data.get("worker", {}))
        self.sweeper = SweeperConfig(data.get("sweeper", {}))
        self.session = SessionConfig(data.get("session", {}), self.settings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_config() -> AppConfig:
    """Get cached full config instance."""
    return AppConfig()

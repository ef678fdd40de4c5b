from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LABBOOKING_")

    database_url: str = "sqlite+pysqlite:///:memory:"
    catalog_seed_path: Path | None = None
    min_reservation_minutes: int = 15
    max_recurring_occurrences: int = 52
    log_level: str = "INFO"

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from_email: str = "no-reply@labbooking.local"
    smtp_use_tls: bool = True

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_host)


settings = Settings()

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, PositiveFloat, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CONTENTCRON_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "contentcron"
    environment: str = "production"
    log_level: str = "INFO"

    state_root: Path = Field(default=Path("/state"))
    database_url: str | None = None

    cron_secret_token: str | None = None
    job_claim_ttl_seconds: PositiveInt = 300

    mail_api_key: str | None = None
    mail_api_base_url: str = "https://api.resend.com"
    mail_from_address: str = "connect@ihatereading.in"
    mail_batch_size: PositiveInt = 50
    mail_max_recipients_per_call: PositiveInt = 50
    mail_send_timeout_seconds: PositiveFloat = 30.0

    default_page_size: PositiveInt = 100
    max_page_size: PositiveInt = 1000

    @field_validator("state_root", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path) -> Path:
        raw = str(value)
        if "~" in raw:
            raise ValueError("Home expansion syntax is not allowed in paths")
        if "$" in raw:
            raise ValueError("Environment variable syntax is not allowed in paths")
        path = Path(raw)
        if not path.is_absolute():
            raise ValueError("Path settings must be absolute")
        return path

    @field_validator("cron_secret_token", "mail_api_key", mode="before")
    @classmethod
    def _blank_secret_is_unset(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    @model_validator(mode="after")
    def _validate_runtime_constraints(self) -> "Settings":
        self.state_root = self.state_root.resolve(strict=False)
        self.state_root.mkdir(parents=True, exist_ok=True)

        if self.mail_batch_size > self.mail_max_recipients_per_call:
            raise ValueError("mail_batch_size must be less than or equal to mail_max_recipients_per_call")

        if self.job_claim_ttl_seconds <= self.mail_send_timeout_seconds:
            raise ValueError("job_claim_ttl_seconds must be greater than mail_send_timeout_seconds")

        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must be greater than or equal to default_page_size")

        self.mail_api_base_url = self.mail_api_base_url.rstrip("/")
        self.log_level = self.log_level.upper().strip()
        return self

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.state_root / "contentcron.sqlite3"
        return f"sqlite:///{db_path.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

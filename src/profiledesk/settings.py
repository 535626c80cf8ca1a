"""Shared configuration settings for the CRM gateway and web app."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SharedSettings(BaseSettings):
    """Base settings shared by every entrypoint."""

    runtime_env: str = "local"
    log_level: str = "INFO"

    attio_api_url: str = "https://api.attio.com/v2"
    attio_api_key: str = ""
    attio_person_object_id: str = "people"
    attio_email_attribute: str = "email_addresses"
    attio_timeout_seconds: float = 10.0

    fields_config_path: Path | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("fields_config_path", mode="before")
    @classmethod
    def _normalize_fields_config_path(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def validate_required_secrets(self) -> "SharedSettings":
        """Require the CRM credential in non-local runtime environments."""
        env = self.runtime_env.strip().lower()
        if env in {"local", "dev", "development", "test"}:
            return self

        if not self.attio_api_key.strip():
            raise ValueError("ATTIO_API_KEY must be set when RUNTIME_ENV is non-local.")
        return self

    @property
    def attio_base_url(self) -> str:
        """CRM API root without a trailing slash."""
        return self.attio_api_url.strip().rstrip("/")

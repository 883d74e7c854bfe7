from functools import lru_cache
import json
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator

_ENV_CANDIDATES = (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path(__file__).resolve().parent.parent / ".env",
    Path.cwd() / ".env",
)

for env_path in _ENV_CANDIDATES:
    if env_path.is_file():
        load_dotenv(env_path, override=False)
        break


def _split_list(value: object) -> list[str]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                return [str(item) for item in json.loads(stripped)]
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in stripped.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise ValueError("Expected a list or a comma-separated string.")


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/budget"
    api_prefix: str = "/api"
    allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8000",
        ]
    )
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    log_level: str = "INFO"

    whatsapp_access_token: str | None = Field(default=None, alias="WHATSAPP_ACCESS_TOKEN")
    whatsapp_phone_number_id: str | None = Field(default=None, alias="WHATSAPP_PHONE_NUMBER_ID")
    whatsapp_verify_token: str | None = Field(default=None, alias="WHATSAPP_VERIFY_TOKEN")
    whatsapp_api_base_url: str = "https://graph.facebook.com/v18.0"
    whatsapp_timeout_seconds: float = 20.0

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    recognition_engine: Literal["openai", "tesseract"] = "openai"
    recognition_model: str = "gpt-4o-mini"
    currency_symbol: str = "Nu."

    phone_country_code: str = "975"
    phone_local_length: int = 8
    phone_mobile_prefixes: list[str] = Field(default_factory=lambda: ["17", "77"])
    phone_default_country_code: str = "1"
    phone_default_national_length: int = 10

    message_dedup_backend: Literal["memory", "database"] = "memory"
    message_cache_max_size: int = 1000
    message_cache_ttl_seconds: int | None = 60 * 60 * 24
    image_dedup_window_seconds: int = 10
    duplicate_window_hours: int = 24
    duplicate_scan_limit: int = 10

    debug_endpoints_enabled: bool = False

    model_config = SettingsConfigDict(env_file=None, populate_by_name=True)

    @field_validator("allow_origins", "phone_mobile_prefixes", mode="before")
    @classmethod
    def parse_list(cls, value: object) -> list[str]:
        return _split_list(value)

    @model_validator(mode="after")
    def populate_from_env(self) -> "Settings":
        if not self.whatsapp_access_token:
            self.whatsapp_access_token = os.getenv("WHATSAPP_ACCESS_TOKEN")
        if not self.whatsapp_verify_token:
            self.whatsapp_verify_token = os.getenv("WHATSAPP_VERIFY_TOKEN")
        if not self.openai_api_key:
            self.openai_api_key = os.getenv("OPENAI_API_KEY")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""
    return Settings()

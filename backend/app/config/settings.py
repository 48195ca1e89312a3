# /app/config/settings.py

import re
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017/smartfix"
    max_pool_size: int = 10
    min_pool_size: int = 1
    mongo_ssl: bool = False

    # WhatsApp Cloud API
    whatsapp_access_token: str
    whatsapp_phone_id: str
    whatsapp_verify_token: str
    whatsapp_app_secret: str
    whatsapp_api_base: str = "https://graph.facebook.com/v17.0"
    whatsapp_timeout_seconds: float = 15.0

    # Flow
    flow_name: str = "smartfix_phone_shop"

    # Security
    api_key: str | None = None

    # Deployment
    environment: str = Field(default="production")

    # App Metadata & Limits
    api_version: str = "v1"
    rate_limit_per_minute: int = 100

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---------------- Validators ---------------- #

    @field_validator("whatsapp_phone_id")
    @classmethod
    def phone_id_must_be_digits(cls, v):
        if not re.match(r"^\d+$", v):
            raise ValueError("WHATSAPP_PHONE_ID must contain only digits")
        return v

    @field_validator("whatsapp_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()

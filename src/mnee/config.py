"""
Configuration management using pydantic-settings.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from mnee.constants import DEFAULT_API_URL, DEFAULT_ORDINALS_API_URL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MNEE_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    environment: Literal["production", "sandbox"] = "production"

    api_url: str = DEFAULT_API_URL
    api_token: str = ""
    ordinals_api_url: str = DEFAULT_ORDINALS_API_URL

    request_timeout: float = 30.0

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()

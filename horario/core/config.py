from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HORARIO_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_name: str = "Horario Propostas"
    api_base_url: str = "http://localhost:3000/api"
    api_token: str | None = None
    request_timeout_seconds: float = 15.0

    # Grid cells flagged after a failed create stay "errored" this long.
    error_cooldown_seconds: float = 3.0

    allow_sub_slot_ranges: bool = False
    conflict_scope: Literal["proposal", "period"] = "proposal"

    log_level: str = "INFO"

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sharetab.services.split import RemainderPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    remainder_policy: RemainderPolicy = Field(RemainderPolicy.LAST, alias="REMAINDER_POLICY")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

"""Application settings loaded from environment variables."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """journeylog configuration. All values come from environment variables."""

    # MongoDB
    mongo_url: str = Field(default="mongodb://localhost:27017")
    mongo_db_name: str = Field(default="journeylog")

    # Realtime bus (in-process fanout when empty)
    redis_url: str = Field(default="")

    # Auth (tokens are issued by the external auth provider)
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")

    # Feed
    feed_page_size: int = Field(default=10, ge=1, le=100)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)

    # Profiles
    lookup_timeout_seconds: float = Field(default=5.0, gt=0)

    # Sessions (0 disables idle eviction)
    session_idle_seconds: float = Field(default=1800.0, ge=0)
    session_sweep_seconds: float = Field(default=60.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def realtime_enabled(self) -> bool:
        """True when change events fan out through Redis instead of in-process."""
        return bool(self.redis_url.strip())


settings = Settings()

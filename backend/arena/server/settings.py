"""Arena server configuration via environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.identity import DEFAULT_SESSION_TTL_SECONDS
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class ArenaServerSettings(BaseSettings):
    model_config = {"env_prefix": "ARENA_"}

    log_dir: str = "backend/logs/arena"
    cors_origins: list[str] = []
    database_path: Path = Path("backend/data/database.json")
    audit_log_path: Path | None = Path("backend/data/audit.log")
    tournaments_config_path: Path | None = None
    cookie_secure: bool = True
    session_ttl_seconds: int = Field(default=DEFAULT_SESSION_TTL_SECONDS, gt=0)
    lock_stale_after_seconds: float = Field(default=10.0, gt=0)
    lock_max_retries: int = Field(default=20, ge=1)
    lock_retry_delay_seconds: float = Field(default=0.05, ge=0)
    job_token: str | None = None
    payment_recipient_address: str | None = None
    world_id_base_url: str = "https://developer.worldcoin.org"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)

"""Party server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class PartyServerSettings(BaseSettings):
    model_config = {"env_prefix": "PARTY_"}

    database_path: str = Field(default="backend/storage.db", min_length=1)
    # Keep every document in process memory instead of SQLite (local development).
    memory_store: bool = False
    log_dir: str = Field(default="backend/logs/party", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]

    # Metadata lookup is disabled unless both credentials are set.
    spotify_client_id: str | None = None
    spotify_client_secret: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @property
    def metadata_enabled(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

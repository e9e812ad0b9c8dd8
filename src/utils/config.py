"""Configuration management using Pydantic Settings with YAML support."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

_ENV_VAR = re.compile(r"\$\{([^}]+)\}")


class SpotifyConfig(BaseModel):
    """Spotify Web API configuration."""

    client_id: str = ""
    client_secret: str = ""
    base_url: str = "https://api.spotify.com/v1/"
    accept_language: str | None = None
    market: str | None = None
    retry: bool = True
    timeout: float = 30.0

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str | None = None
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def file_path(self) -> Path | None:
        return Path(self.file).expanduser() if self.file else None


class Settings(BaseSettings):
    """Client settings.

    Values come from the YAML file passed in by ``load_config``. Environment
    variables such as ``SPOTIFY_SPOTIFY__MARKET`` take precedence over it.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_",
        env_nested_delimiter="__",
    )

    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Nested sections are merged key by key, env first
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_config(config_path: Path | str = "config.yaml") -> Settings:
    """Load settings from a YAML file, then apply SPOTIFY_* environment overrides.

    A missing file yields the defaults. ``${VAR}`` references inside string
    values are replaced from the environment (empty when unset).
    """
    path = Path(config_path)

    raw: dict[str, Any] = {}
    if path.exists():
        raw = yaml.safe_load(path.read_text()) or {}

    return Settings(**_expand_env_vars(raw))


def _expand_env_vars(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def save_config(settings: Settings, config_path: Path | str = "config.yaml") -> None:
    """Write settings back to YAML in the layout load_config reads."""
    data = settings.model_dump(mode="json")
    Path(config_path).write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

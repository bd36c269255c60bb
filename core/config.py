"""Configuration helpers for Rustizarr."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from core.errors import ConfigError

_DEFAULT_CONFIG_PATH = Path("config.yaml")

MAX_CONCURRENCY = 10

# (section, key in config.yaml) -> settings field
_YAML_FIELDS: Dict[Tuple[str, str], str] = {
    ("plex", "url"): "plex_url",
    ("plex", "token"): "plex_token",
    ("tmdb", "apiKey"): "tmdb_key",
    ("libraries", "movies"): "library_id",
    ("libraries", "shows"): "shows_library_id",
    ("overlays", "path"): "overlays_path",
    ("server", "port"): "port",
    ("server", "webhookDelay"): "webhook_delay",
    ("logging", "level"): "log_level",
    ("logging", "directory"): "log_dir",
}


class AppConfig(BaseSettings):
    """
    Application settings.

    Read from the environment (``PLEX_URL``, ``PLEX_TOKEN``, ``TMDB_KEY``, ``LIBRARY_ID``, ...)
    and an optional ``.env`` file. Keyword arguments, which is how ``config.yaml`` values are
    passed in, rank below both.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    plex_url: str
    plex_token: str
    tmdb_key: str
    library_id: str = "1"
    shows_library_id: str = "2"
    overlays_path: Optional[str] = None
    port: int = 3000
    log_level: str = "INFO"
    log_dir: str = "logs"
    webhook_delay: float = 10.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("plex_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("library_id", "shows_library_id", mode="before")
    @classmethod
    def _section_id_as_text(cls, value: Any) -> Any:
        # YAML reads bare section ids as integers
        return str(value) if isinstance(value, int) else value

    def with_overrides(self, **changes: Any) -> "AppConfig":
        """Return a copy with the non-None values of ``changes`` applied."""
        return self.model_copy(update={k: v for k, v in changes.items() if v is not None})


def load_yaml(path: str | Path = _DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load the optional YAML config file. A missing file yields an empty mapping."""
    path = Path(path)
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def yaml_settings(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the sectioned YAML layout into settings field names, dropping blank values."""
    values: Dict[str, Any] = {}
    for (section, key), field in _YAML_FIELDS.items():
        block = data.get(section)
        if not isinstance(block, dict):
            continue
        value = block.get(key)
        if value not in (None, ""):
            values[field] = value
    return values


def _describe(exc: ValidationError) -> str:
    missing = [str(error["loc"][0]).upper() for error in exc.errors() if error["type"] == "missing"]
    if missing:
        return f"Missing required setting(s): {', '.join(missing)}"
    problems = [f"{str(error['loc'][0]).upper()} ({error['msg']})" for error in exc.errors()]
    return f"Invalid setting(s): {', '.join(problems)}"


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Build the application config from ``config.yaml`` (if present) and the environment.

    Environment variables always take precedence over the file.
    """
    file_values = yaml_settings(load_yaml(path or _DEFAULT_CONFIG_PATH))
    try:
        return AppConfig(**file_values)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc


def clamp_concurrency(value: int) -> int:
    """Clamp a user supplied parallelism to [1, MAX_CONCURRENCY]."""
    return max(1, min(int(value), MAX_CONCURRENCY))

"""Configuration for trackshelf.

Settings live in ``~/.trackshelf/config.toml`` (or ``$TRACKSHELF_HOME``).
Environment variables override whatever the file says:

===========================  ==========================
``TRACKSHELF_HOST``          ``server.host``
``TRACKSHELF_PORT``          ``server.port``
``TRACKSHELF_LOG_LEVEL``     ``server.log_level``
``SPOTIFY_CLIENT_ID``        ``spotify.client_id``
``SPOTIFY_CLIENT_SECRET``    ``spotify.client_secret``
``SPOTIFY_MARKET``           ``spotify.market``
===========================  ==========================
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

CONFIG_FILE = "config.toml"
DATABASE_FILE = "trackshelf.db"
LOG_DIR = "logs"

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TRACKSHELF_HOST": ("server", "host"),
    "TRACKSHELF_PORT": ("server", "port"),
    "TRACKSHELF_LOG_LEVEL": ("server", "log_level"),
    "SPOTIFY_CLIENT_ID": ("spotify", "client_id"),
    "SPOTIFY_CLIENT_SECRET": ("spotify", "client_secret"),
    "SPOTIFY_MARKET": ("spotify", "market"),
}


def get_base_dir() -> Path:
    """Directory holding the config file, the database and ``logs/``."""
    override = os.environ.get("TRACKSHELF_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".trackshelf"


class ServerConfig(BaseModel):
    host: str = Field(default="127.0.0.1", description="Interface the HTTP server binds to")
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "info"

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_level(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value


class SpotifyConfig(BaseModel):
    """Client-credentials app used only for catalog search."""

    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    market: str = Field(default="", description="ISO 3166-1 alpha-2 code; empty means any market")
    timeout_seconds: int = Field(default=30, gt=0)

    @field_validator("market")
    @classmethod
    def _normalise_market(cls, value: str) -> str:
        value = value.strip().upper()
        if value and (len(value) != 2 or not value.isalpha()):
            msg = f"market must be a two-letter country code, got {value!r}"
            raise ValueError(msg)
        return value


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def database_path(self) -> Path:
        return self.base_dir / DATABASE_FILE

    @property
    def log_dir(self) -> Path:
        return self.base_dir / LOG_DIR

    def is_spotify_configured(self) -> bool:
        """True when both halves of the Spotify app credentials are present."""
        return bool(self.spotify.client_id and self.spotify.client_secret.get_secret_value())


def ensure_dirs() -> None:
    base = get_base_dir()
    for directory in (base, base / LOG_DIR):
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    return (get_base_dir() / CONFIG_FILE).is_file()


def _apply_env(raw: dict) -> dict:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})[key] = value
    return raw


def load_config(*, use_env: bool = True) -> AppConfig:
    """Read the config file (if any) and layer environment overrides on top.

    Raises ``pydantic.ValidationError`` when the file holds invalid values.
    """
    path = get_base_dir() / CONFIG_FILE
    raw: dict = {}
    if path.is_file():
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    if use_env:
        raw = _apply_env(raw)
    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Render *config* as TOML, one table per section field of ``AppConfig``."""
    blocks = []
    for section in AppConfig.model_fields:
        body = getattr(config, section).model_dump(mode="python")
        lines = [f"[{section}]", *(f"{key} = {_format_toml_value(val)}" for key, val in body.items())]
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


def save_config(config: AppConfig) -> Path:
    """Write *config* to disk (owner read/write only) and return the path.

    The file is written to a sibling temp file first and renamed into place,
    so a crash never leaves a half-written config behind.
    """
    ensure_dirs()
    path = get_base_dir() / CONFIG_FILE
    tmp = path.with_suffix(".toml.tmp")
    tmp.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(tmp, 0o600)
    tmp.replace(path)
    return path

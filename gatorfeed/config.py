"""The user's JSON configuration file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from .database import Database, DatabaseError

CONFIG_FILE = ".gatorconfig.json"


class ConfigError(Exception):
    """The configuration could not be read, written or used."""


def config_file_path() -> Path:
    """Return the location of the configuration file in the home directory."""
    try:
        home = Path.home()
    except (RuntimeError, KeyError, OSError) as exc:
        raise ConfigError(f"failed to get home dir: {exc}") from exc
    return home / CONFIG_FILE


@dataclass
class Config:
    """Database location and the name of the logged-in user."""

    db_url: str = ""
    user_name: str = ""
    path: Path | None = field(default=None, repr=False, compare=False)

    def to_json(self) -> str:
        return json.dumps(
            {"db_url": self.db_url, "current_user_name": self.user_name},
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def set_user(self, name: str) -> None:
        """Record ``name`` as the current user and save the file."""
        self.user_name = name
        target = self.path if self.path is not None else config_file_path()
        data = self.to_json().encode("utf-8")
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o664)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
        except OSError as exc:
            raise ConfigError(f"failed to write configuration file: {exc}") from exc


def read(path: str | os.PathLike[str] | None = None) -> Config:
    """Load the configuration from ``path``, or from the home directory."""
    target = Path(path) if path is not None else config_file_path()
    try:
        text = target.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read configuration file: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to unmarshal configuration: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("failed to unmarshal configuration: expected a JSON object")
    values = {}
    for key in ("db_url", "current_user_name"):
        value = data.get(key, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ConfigError(f"failed to unmarshal configuration: {key} must be a string")
        values[key] = value
    return Config(db_url=values["db_url"], user_name=values["current_user_name"], path=target)


def load_db(config: Config) -> Database:
    """Open the database named by the configuration."""
    if not config.db_url:
        raise ConfigError("failed to open db: no db_url configured")
    try:
        return Database(config.db_url)
    except DatabaseError as exc:
        raise ConfigError(f"failed to open db: {exc}") from exc
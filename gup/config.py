"""
Configuration for gup.

Values are resolved in this order:
    1. process environment (a local .env is loaded into it via python-dotenv)
    2. ~/.gdrive-config/config.json
    3. built-in defaults

Usage:
    from gup.config import Config
    cfg = Config.load()
    cfg.require_client()             # raises ConfigError if id/secret missing
    cfg.set("default_folder_id", "1AbC", persistent=True)
"""
from __future__ import annotations

import json
import logging
import os
import stat
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path("~/.gdrive-config").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_DOWNLOAD_LOCATION = str(Path("~/Downloads").expanduser())

# Config key → environment variable that overrides it
ENV_KEYS: dict[str, str] = {
    "client_id": "GOOGLE_CLIENT_ID",
    "client_secret": "GOOGLE_CLIENT_SECRET",
    "default_folder_id": "GDRIVE_DEFAULT_FOLDER_ID",
    "default_download_location": "GDRIVE_DEFAULT_DOWNLOAD_LOCATION",
    "verbose": "GDRIVE_VERBOSE",
}

_SECRET_KEYS = {"client_secret"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """User configuration. Only the fields below are recognised."""

    client_id: str = ""
    client_secret: str = ""
    default_folder_id: str = ""
    default_download_location: str = DEFAULT_DOWNLOAD_LOCATION
    verbose: bool = False

    path: Path = CONFIG_FILE

    # Values that belong in the config file: those read from it plus explicit saves
    _stored: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # ── Loading / saving ──────────────────────────────────────────────────────

    @classmethod
    def load(cls, path: Optional[Path] = None, use_dotenv: bool = True) -> Config:
        """
        Read the config file (if any), then apply environment overrides.

        Raises ConfigError if the file exists but is not a JSON object.
        """
        if use_dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        cfg_path = Path(path) if path else CONFIG_FILE
        stored: dict[str, Any] = {}
        if cfg_path.exists():
            try:
                stored = json.loads(cfg_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid config file {cfg_path}: {e}") from e
            if not isinstance(stored, dict):
                raise ConfigError(f"Invalid config file {cfg_path}: expected a JSON object")

        cfg = cls(path=cfg_path)
        for key in ENV_KEYS:
            # Accept the camelCase keys written by earlier versions
            camel = _camel(key)
            if key in stored:
                cfg._assign(key, stored[key])
            elif camel in stored:
                cfg._assign(key, stored[camel])
            else:
                continue
            cfg._stored[key] = getattr(cfg, key)

        for key, env_var in ENV_KEYS.items():
            value = os.environ.get(env_var)
            if value is not None and value != "":
                cfg._assign(key, value)

        logger.debug("Loaded config from %s", cfg_path)
        return cfg

    def save(self) -> None:
        """
        Write the stored settings back to the config file (mode 0600).

        Values that only came from the environment or a .env file are not
        written; use set(..., persistent=True) or persist() to store them.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._stored, indent=2), encoding="utf-8")
        tmp.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        os.replace(tmp, self.path)
        logger.info("Saved config to %s", self.path)

    def persist(self, *keys: str) -> None:
        """Store the current values of `keys` in the config file."""
        for key in keys:
            if key not in ENV_KEYS:
                raise ConfigError(f"Unknown config key: {key}")
            self._stored[key] = getattr(self, key)
        self.save()

    # ── Accessors ─────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, persistent: bool = True) -> None:
        """
        Change one setting.

        A non-persistent change only updates this object and the process
        environment, so it lasts for the current run.
        """
        if key not in ENV_KEYS:
            raise ConfigError(f"Unknown config key: {key}")
        self._assign(key, value)
        current = getattr(self, key)
        os.environ[ENV_KEYS[key]] = str(current).lower() if key == "verbose" else current
        if persistent:
            self.persist(key)

    def require_client(self) -> tuple[str, str]:
        """Return (client_id, client_secret) or raise ConfigError."""
        missing = [k for k in ("client_id", "client_secret") if not getattr(self, k)]
        if missing:
            env = ", ".join(ENV_KEYS[k] for k in missing)
            raise ConfigError(
                f"Missing OAuth client settings: {', '.join(missing)}. "
                f"Run 'gup config init' or set {env}."
            )
        return self.client_id, self.client_secret

    def as_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Public view of the settings, for `gup config show`."""
        out: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "path" or f.name.startswith("_"):
                continue
            value = getattr(self, f.name)
            if mask_secrets and f.name in _SECRET_KEYS and value:
                value = value[:4] + "…" if len(value) > 4 else "…"
            out[f.name] = value
        return out

    # ── Internal ──────────────────────────────────────────────────────────────

    def _assign(self, key: str, value: Any) -> None:
        if key == "verbose":
            setattr(self, key, _parse_bool(value))
        elif value is None:
            setattr(self, key, "")
        else:
            setattr(self, key, str(value))


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)

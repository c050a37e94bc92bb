from __future__ import annotations
from pathlib import Path
from json import JSONDecodeError, load, dump
from os import getenv
from typing import Optional

from .exceptions import ConfigError

ENV_URL = "PLEX_URL"
ENV_TOKEN = "PLEX_TOKEN"


def default_config_dir() -> Path:
    override = getenv("PLEXPORT_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "plexport"


class Config:
    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.default_config = {
            "workers": 4,
            "retries": 3,
            "timeout": 30,  # seconds, Plex HTTP requests
            "transcode_timeout": 900,  # seconds, one ffmpeg run
        }
        self.data = self.load()

    def load(self) -> dict:
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = load(f)
            except (OSError, JSONDecodeError) as e:
                raise ConfigError(f"cannot read config file {self.config_file}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"config file {self.config_file} must hold a JSON object")
            return {**self.default_config, **data}
        else:
            self.save(self.default_config)
            return dict(self.default_config)

    def save(self, data: dict) -> None:
        # Credentials come from the environment and are never written out.
        data = {k: v for k, v in data.items() if k not in ("plex_url", "plex_token")}
        with open(self.config_file, "w", encoding="utf-8") as f:
            dump(data, f, indent=4)

    @property
    def plex_url(self) -> str:
        return getenv(ENV_URL) or self.data.get("plex_url") or ""

    @property
    def plex_token(self) -> str:
        return getenv(ENV_TOKEN) or self.data.get("plex_token") or ""

    def require_plex(self) -> tuple[str, str]:
        url, token = self.plex_url, self.plex_token
        if not url or not token:
            raise ConfigError(
                f"{ENV_URL} and {ENV_TOKEN} environment variables must be set"
            )
        return url, token

    def get_int(self, key: str) -> int:
        value = self.data.get(key, self.default_config.get(key))
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"config value {key!r} must be an integer, got {value!r}")

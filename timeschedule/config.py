"""
Configuration.

Settings come from an optional JSON file, e.g.:

    {
        "root_url": "https://www.washington.edu/students/timeschd/AUT2013/",
        "data_dir": "data",
        "fetch_limit": 8,
        "insert_limit": 4,
        "interval_minutes": 5,
        "loop": false
    }

Missing keys keep their defaults. CLI flags override file values.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

from timeschedule.errors import ConfigError


PACKAGE_DIR = Path(__file__).resolve().parent

ROOT_URL = "https://www.washington.edu/students/timeschd/AUT2013/"


@dataclass
class Settings:
    root_url: str = ROOT_URL
    data_dir: Path = PACKAGE_DIR / "data"
    fetch_limit: int = 8
    insert_limit: int = 4
    fetch_timeout: float = 30.0
    interval_minutes: float = 5.0
    loop: bool = False

    def validate(self) -> "Settings":
        if not self.root_url:
            raise ConfigError("root_url must not be empty")
        if self.fetch_limit < 1:
            raise ConfigError(f"fetch_limit must be >= 1, got {self.fetch_limit}")
        if self.insert_limit < 1:
            raise ConfigError(f"insert_limit must be >= 1, got {self.insert_limit}")
        if self.fetch_timeout <= 0:
            raise ConfigError(f"fetch_timeout must be > 0, got {self.fetch_timeout}")
        if self.interval_minutes < 0:
            raise ConfigError(f"interval_minutes must be >= 0, got {self.interval_minutes}")
        return self

    def override(self, **values: Any) -> "Settings":
        """
        Return a copy with every non-None value applied.
        """
        changes = {k: v for k, v in values.items() if v is not None}
        if "data_dir" in changes:
            changes["data_dir"] = Path(changes["data_dir"])
        return replace(self, **changes).validate()


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from a JSON file. path=None gives the defaults.
    """
    if path is None:
        return Settings().validate()

    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"error reading config at {config_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"error parsing config file at {config_path} as JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"config at {config_path} must be a JSON object")

    known = {f.name: f for f in fields(Settings)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    try:
        for key, raw in data.items():
            if key == "data_dir":
                # relative to the config file, not the working directory
                values[key] = (config_path.parent / str(raw)).resolve()
            elif key in ("fetch_limit", "insert_limit"):
                values[key] = int(raw)
            elif key in ("fetch_timeout", "interval_minutes"):
                values[key] = float(raw)
            elif key == "loop":
                if not isinstance(raw, bool):
                    raise ConfigError(f"loop must be true or false, got {raw!r}")
                values[key] = raw
            else:
                values[key] = str(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"bad value in config at {config_path}: {exc}") from exc

    return Settings(**values).validate()

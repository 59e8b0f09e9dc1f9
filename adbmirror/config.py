from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from adbmirror.device import DEFAULT_ADB_PATH, DEFAULT_COMMAND_TIMEOUT


CONFIG_FILENAME = ".adbmirror.json"
CONFIG_ENV_VAR = "ADBMIRROR_CONFIG"


@dataclass(slots=True)
class MirrorConfig:
    adb_path: str = DEFAULT_ADB_PATH
    serial: str | None = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    last_local_path: str | None = None
    last_device_path: str | None = None


def config_path(base_dir: Path | None = None) -> Path:
    override = os.getenv(CONFIG_ENV_VAR, "").strip()
    if override and base_dir is None:
        return Path(override).expanduser().resolve()
    return (base_dir or Path.home()).resolve() / CONFIG_FILENAME


def default_serial() -> str | None:
    return os.getenv("ANDROID_SERIAL", "").strip() or None


def default_adb_path() -> str:
    return os.getenv("ADB", "").strip() or DEFAULT_ADB_PATH


def load_config(base_dir: Path | None = None) -> MirrorConfig:
    path = config_path(base_dir)
    if not path.exists():
        return MirrorConfig(adb_path=default_adb_path(), serial=default_serial())

    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    known = {item.name for item in fields(MirrorConfig)}
    config = MirrorConfig(**{key: value for key, value in data.items() if key in known})
    if not config.serial:
        config.serial = default_serial()
    config.command_timeout = float(config.command_timeout)
    return config


def save_config(config: MirrorConfig, base_dir: Path | None = None) -> Path:
    path = config_path(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(asdict(config), fh, indent=2)
        fh.write("\n")
    return path

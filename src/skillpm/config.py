from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from platformdirs import user_cache_path, user_config_path

from .errors import SkillpmError
from .jsonio import read_json, write_json_atomic

APP_NAME = "skillpm"
CONFIG_FILENAME = "config.json"


@dataclass(frozen=True)
class Config:
    cache_dir: str | None = None  # None -> platform cache dir
    default_registry: str | None = None  # used when a project has no skills.json default
    git_executable: str = "git"


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("SKILLPM_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path(APP_NAME) / CONFIG_FILENAME


def load_config(path_override: str | Path | None = None) -> Config:
    """Read the user config; unknown keys are ignored, a missing or empty file gives defaults."""
    path = config_path(path_override)
    if not path.is_file():
        return Config()
    try:
        raw = read_json(path)
    except (OSError, ValueError) as e:
        raise SkillpmError(f"Failed to read config {path}: {e}") from e
    if not isinstance(raw, dict):
        return Config()
    known = {f.name for f in fields(Config)}
    return Config(**{k: v for k, v in raw.items() if k in known})


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    write_json_atomic(path, asdict(cfg))
    return path


def cache_root(cfg: Config) -> Path:
    if env := os.getenv("SKILLPM_CACHE_DIR"):
        return Path(env).expanduser()
    if cfg.cache_dir:
        return Path(cfg.cache_dir).expanduser()
    return user_cache_path(APP_NAME)

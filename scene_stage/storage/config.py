"""Global app configuration (playback timing, LLM connection, scene prompt)."""

import json
from pathlib import Path
from typing import Any

from scene_stage.config import apply_update, merge_config

from .core import data_dir


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    path = _config_path()
    stored = json.loads(path.read_text()) if path.is_file() else None
    return merge_config(stored)


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = apply_update(get_config(), fields)
    _config_path().write_text(json.dumps(config, indent=2))
    return config

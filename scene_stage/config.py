"""App configuration: playback timing, repair threshold, LLM connection, prompt.

Stored as {DATA_DIR}/config.json. `merge_config` returns defaults merged with
stored values; `apply_update` merges a partial update — llm_connection is
merged key-by-key, scalars are overwritten, unknown keys are dropped.
Process-level settings (DATA_DIR, HOST, PORT) come from the environment,
loaded from .env by python-dotenv.
"""

import copy
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT = Path(__file__).parent.parent
load_dotenv(ROOT / ".env")

DEFAULT_DATA_DIR = ROOT / "data"

_CONFIG_DEFAULTS: dict[str, Any] = {
    "typewriter_speed": 25,        # ms per character, 0 = instant
    "fade_duration": 0.5,          # seconds per half of a background cross-fade
    "enter_duration": 0.5,
    "exit_duration": 0.5,
    "auto_advance": False,
    "auto_advance_delay": 2.0,
    "repair_max_distance": 2,
    "placeholder_avatar": "/assets/images/default_avatar.svg",
    "default_background": "",
    "persona_id": "user",
    "llm_connection": {
        "provider_url": "",
        "api_key": "",
        "model": "",
    },
    "scene_prompt": "",            # empty → built-in template
}

_SCALAR_KEYS = [k for k, v in _CONFIG_DEFAULTS.items() if not isinstance(v, dict)]


def data_dir_from_env() -> Path:
    return Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))


def default_config() -> dict[str, Any]:
    return copy.deepcopy(_CONFIG_DEFAULTS)


def merge_config(stored: dict[str, Any] | None) -> dict[str, Any]:
    """Defaults overlaid with whatever was stored."""
    config = default_config()
    if stored:
        config = apply_update(config, stored)
    return config


def apply_update(config: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Merge `fields` into a copy of `config`."""
    merged = copy.deepcopy(config)
    for key in _SCALAR_KEYS:
        if key in fields:
            merged[key] = fields[key]
    if isinstance(fields.get("llm_connection"), dict):
        for key, value in fields["llm_connection"].items():
            if key in merged["llm_connection"]:
                merged["llm_connection"][key] = value
    return merged


class PlaybackSettings(BaseModel):
    """Timing and behaviour knobs read by the playback engine."""

    typewriter_speed: float = Field(25, ge=0)
    fade_duration: float = Field(0.5, ge=0)
    enter_duration: float = Field(0.5, ge=0)
    exit_duration: float = Field(0.5, ge=0)
    auto_advance: bool = False
    auto_advance_delay: float = Field(2.0, ge=0)
    repair_max_distance: int = Field(2, ge=0)
    placeholder_avatar: str = "/assets/images/default_avatar.svg"
    default_background: str = ""
    persona_id: str = "user"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "PlaybackSettings":
        return cls.model_validate({k: v for k, v in config.items() if k in cls.model_fields})

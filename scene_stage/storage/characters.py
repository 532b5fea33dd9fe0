"""Character file storage."""

import json
from pathlib import Path

from scene_stage.models import Character

from .core import conversations_dir


def _characters_path(slug: str) -> Path:
    return conversations_dir() / slug / "characters.json"


def get_characters(slug: str) -> list[Character]:
    """Load characters for a conversation. Returns [] if missing."""
    path = _characters_path(slug)
    if not path.is_file():
        return []
    return [Character.model_validate(c) for c in json.loads(path.read_text())]


def save_characters(slug: str, characters: list[Character]) -> None:
    """Write the characters list for a conversation."""
    path = _characters_path(slug)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([c.model_dump() for c in characters], indent=2))


def get_character(slug: str, char_id: str) -> Character | None:
    """Find a single character by id. Returns None if not found."""
    for char in get_characters(slug):
        if char.id == char_id:
            return char
    return None

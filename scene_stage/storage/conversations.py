"""Conversation CRUD."""

import json
import shutil
from datetime import datetime, timezone
from typing import Any

from .core import conversations_dir, slugify


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def list_conversations() -> list[dict[str, Any]]:
    results = []
    for path in sorted(conversations_dir().glob("*.json")):
        results.append(json.loads(path.read_text()))
    return results


def get_conversation(slug: str) -> dict[str, Any] | None:
    path = conversations_dir() / f"{slug}.json"
    if not path.is_file():
        return None
    return json.loads(path.read_text())


def create_conversation(title: str, persona_name: str = "") -> dict[str, Any]:
    """Create an empty conversation. A numeric suffix keeps slugs unique."""
    base = slugify(title)
    slug = base
    n = 2
    while (conversations_dir() / f"{slug}.json").exists():
        slug = f"{base}-{n}"
        n += 1
    now = _now()
    conversation = {
        "slug": slug,
        "title": title,
        "persona_name": persona_name,
        "created_at": now,
        "updated_at": now,
    }
    (conversations_dir() / slug).mkdir(parents=True, exist_ok=True)
    (conversations_dir() / f"{slug}.json").write_text(json.dumps(conversation, indent=2))
    return conversation


def delete_conversation(slug: str) -> bool:
    json_path = conversations_dir() / f"{slug}.json"
    if not json_path.is_file():
        return False
    json_path.unlink()
    child_dir = conversations_dir() / slug
    if child_dir.is_dir():
        shutil.rmtree(child_dir)
    return True


def touch_conversation(slug: str) -> None:
    """Bump updated_at."""
    conversation = get_conversation(slug)
    if conversation is None:
        return
    conversation["updated_at"] = _now()
    (conversations_dir() / f"{slug}.json").write_text(json.dumps(conversation, indent=2))

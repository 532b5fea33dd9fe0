"""Chat message storage (ordered log per conversation)."""

import json
import uuid
from pathlib import Path

from scene_stage.models import Message

from .conversations import touch_conversation
from .core import conversations_dir


def _messages_path(slug: str) -> Path:
    return conversations_dir() / slug / "messages.json"


def new_message_id() -> str:
    return uuid.uuid4().hex[:12]


def get_messages(slug: str) -> list[Message]:
    """Load messages for a conversation. Returns [] if none exist."""
    path = _messages_path(slug)
    if not path.is_file():
        return []
    return [Message.model_validate(m) for m in json.loads(path.read_text())]


def append_messages(slug: str, messages: list[Message]) -> None:
    """Append messages to a conversation's log."""
    path = _messages_path(slug)
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = get_messages(slug)
    existing.extend(messages)
    path.write_text(json.dumps([m.model_dump(mode="json") for m in existing], indent=2))
    touch_conversation(slug)


def delete_message(slug: str, index: int) -> list[Message]:
    """Delete a message by index. Returns updated message list."""
    messages = get_messages(slug)
    if index < 0 or index >= len(messages):
        raise IndexError(f"Message index {index} out of range")
    messages.pop(index)
    _messages_path(slug).write_text(
        json.dumps([m.model_dump(mode="json") for m in messages], indent=2)
    )
    touch_conversation(slug)
    return messages

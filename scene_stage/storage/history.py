"""History provider over one stored conversation."""

from scene_stage.models import Character, Message

from .characters import get_characters
from .messages import get_messages


class ConversationHistory:
    """Ordered messages plus character lookup for one conversation.

    Characters are read once and cached; call `reload()` after editing them.
    """

    def __init__(self, slug: str) -> None:
        self.slug = slug
        self._characters: dict[str, Character] | None = None

    def messages(self) -> list[Message]:
        return get_messages(self.slug)

    def characters(self) -> list[Character]:
        return list(self._load().values())

    def get_character(self, char_id: str) -> Character | None:
        return self._load().get(char_id)

    def reload(self) -> None:
        self._characters = None

    def _load(self) -> dict[str, Character]:
        if self._characters is None:
            self._characters = {c.id: c for c in get_characters(self.slug)}
        return self._characters

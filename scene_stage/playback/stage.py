"""Stage: the renderable description of what is on screen right now.

The engine writes into a Stage; renderers read `view()` snapshots or
subscribe for change notifications. Nothing here knows about a specific
presentation toolkit. Character ids are resolved through a lookup; unknown
ids render with a placeholder image and their id as name.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import BaseModel, Field

from scene_stage.markup import PlainTextFallback
from scene_stage.models import Character, ContentNode, Position, SceneState

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "/assets/images/default_avatar.svg"
NARRATION = "Narration"
CHOICE = "Choice"


class CharacterLookup(Protocol):
    def get_character(self, char_id: str) -> Character | None: ...


class CharacterView(BaseModel):
    id: str
    name: str
    image_url: str
    position: Position = "center"
    expression: str | None = None
    known: bool = True


class TextboxView(BaseModel):
    speaker: str
    speaker_id: str | None = None
    content: ContentNode = Field(default_factory=ContentNode)
    complete: bool = False
    user_action: bool = False
    references: dict[str, CharacterView] = Field(default_factory=dict)


class ImageView(BaseModel):
    src: str
    url: str
    from_id: str | None = None


class StageView(BaseModel):
    background: str = ""
    transition: str | None = None  # "fade_out" / "fade_in" / "enter:<id>" / "exit:<id>"
    characters: list[CharacterView] = Field(default_factory=list)
    textbox: TextboxView | None = None
    info: str | None = None
    choices: list[str] = Field(default_factory=list)
    image: ImageView | None = None
    waiting: bool = False
    busy: bool = False
    streaming: bool = False
    cursor: int = -1
    length: int = 0
    can_go_back: bool = False
    can_go_forward: bool = False
    fallbacks: list[PlainTextFallback] = Field(default_factory=list)


Listener = Callable[[StageView], None]


class Subscription:
    """Handle returned by Stage.subscribe; closing it stops notifications."""

    def __init__(self, stage: Stage, listener: Listener) -> None:
        self._stage = stage
        self.listener = listener
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._stage._unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class Stage:
    def __init__(
        self,
        characters: CharacterLookup | None = None,
        *,
        placeholder_avatar: str = DEFAULT_PLACEHOLDER,
        default_background: str = "",
        persona_id: str = "user",
    ) -> None:
        self._characters = characters
        self._placeholder = placeholder_avatar
        self._default_background = default_background
        self._persona_id = persona_id
        self._view = StageView(background=default_background)
        self._subscriptions: list[Subscription] = []

    # ── Subscriptions ──────────────────────────────────────

    def subscribe(self, listener: Listener) -> Subscription:
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def close(self) -> None:
        """Release every subscription."""
        for subscription in list(self._subscriptions):
            subscription.close()

    def _notify(self) -> None:
        if not self._subscriptions:
            return
        snapshot = self.view()
        for subscription in list(self._subscriptions):
            try:
                subscription.listener(snapshot)
            except Exception:
                logger.exception("Stage listener failed")

    def view(self) -> StageView:
        return self._view.model_copy(deep=True)

    # ── Character resolution ───────────────────────────────

    def resolve(self, char_id: str, expression: str | None = None) -> CharacterView:
        character = self._characters.get_character(char_id) if self._characters else None
        if character is None:
            logger.debug("Unknown character %r, using placeholder", char_id)
            return CharacterView(
                id=char_id, name=char_id, image_url=self._placeholder,
                expression=expression, known=False,
            )
        return CharacterView(
            id=char_id,
            name=character.name,
            image_url=character.image_for(expression) or self._placeholder,
            expression=expression,
        )

    def _speaker_name(self, speaker_id: str | None, user_action: bool) -> str:
        if speaker_id is None:
            return NARRATION
        view = self.resolve(speaker_id)
        if user_action and not view.known:
            return "You"
        return view.name

    def _references(self, content: ContentNode) -> dict[str, CharacterView]:
        refs: dict[str, CharacterView] = {}
        stack = [content]
        while stack:
            node = stack.pop()
            if node.kind == "ref" and node.attrs.get("id"):
                refs.setdefault(node.attrs["id"], self.resolve(node.attrs["id"]))
            stack.extend(node.children)
        return refs

    # ── Writes ─────────────────────────────────────────────

    def render(self, state: SceneState) -> None:
        """Redraw background and characters from a scene state."""
        self._view.background = state.background or self._default_background
        characters = []
        for record in state.on_stage.values():
            view = self.resolve(record.id, record.expression)
            view.position = record.position
            characters.append(view)
        self._view.characters = characters
        self._notify()

    def set_transition(self, transition: str | None) -> None:
        self._view.transition = transition
        self._notify()

    def show_text(
        self,
        speaker_id: str | None,
        content: ContentNode,
        *,
        complete: bool,
        user_action: bool = False,
    ) -> None:
        self._clear_dialogue()
        self._view.textbox = TextboxView(
            speaker=self._speaker_name(speaker_id, user_action),
            speaker_id=speaker_id,
            content=content.model_copy(deep=True),
            complete=complete,
            user_action=user_action,
            references=self._references(content),
        )
        self._notify()

    def update_text(self, content: ContentNode, *, complete: bool = False) -> None:
        if self._view.textbox is None:
            return
        self._view.textbox.content = content.model_copy(deep=True)
        self._view.textbox.complete = complete
        self._notify()

    def show_choices(self, info: str, choices: list[str]) -> None:
        self._clear_dialogue()
        self._view.textbox = TextboxView(
            speaker=CHOICE,
            content=ContentNode.of_text(info) if info else ContentNode(),
            complete=True,
        )
        self._view.info = info or None
        self._view.choices = list(choices)
        self._notify()

    def show_image(
        self,
        src: str,
        from_id: str | None,
        caption: ContentNode | None = None,
        *,
        complete: bool = True,
    ) -> None:
        """Show an image, optionally with a caption in the textbox."""
        self._clear_dialogue()
        url = src
        if from_id and self._characters:
            character = self._characters.get_character(from_id)
            if character is not None:
                url = character.gallery.get(src, src)
        self._view.image = ImageView(src=src, url=url, from_id=from_id)
        if caption is not None:
            self._view.textbox = TextboxView(
                speaker=self._speaker_name(from_id, False),
                speaker_id=from_id,
                content=caption.model_copy(deep=True),
                complete=complete,
                references=self._references(caption),
            )
        self._notify()

    def clear_dialogue(self) -> None:
        self._clear_dialogue()
        self._notify()

    def _clear_dialogue(self) -> None:
        self._view.textbox = None
        self._view.info = None
        self._view.choices = []
        self._view.image = None
        self._view.waiting = False

    def set_waiting(self, waiting: bool) -> None:
        self._view.waiting = waiting
        self._notify()

    def set_status(
        self,
        *,
        cursor: int,
        length: int,
        can_go_back: bool,
        can_go_forward: bool,
        busy: bool,
        streaming: bool,
    ) -> None:
        self._view.cursor = cursor
        self._view.length = length
        self._view.can_go_back = can_go_back
        self._view.can_go_forward = can_go_forward
        self._view.busy = busy
        self._view.streaming = streaming
        self._notify()

    def set_fallbacks(self, fallbacks: list[PlainTextFallback]) -> None:
        self._view.fallbacks = list(fallbacks)
        self._notify()

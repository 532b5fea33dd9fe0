"""Script compiler: sanitized markup → ordered stage commands per message.

The compiler walks a *shadow* SceneState carried across the whole history so
that each command can snapshot the values it will need to revert. The live
state is never touched here; that belongs to the playback engine.
"""

import logging
from collections.abc import Iterable, Iterator

from lxml import etree
from pydantic import BaseModel, Field

from scene_stage.commands import (
    Background,
    Command,
    Dialogue,
    Enter,
    Exit,
    Narrate,
    Pause,
    Prompt,
    ShowImage,
    apply,
)
from scene_stage.models import CharacterOnStage, ContentNode, Message, SceneState

from .repair import DEFAULT_MAX_DISTANCE
from .sanitizer import sanitize
from .vocabulary import (
    ATTR_EXPRESSION,
    ATTR_FOR,
    ATTR_FROM,
    ATTR_ID,
    ATTR_POSITION,
    ATTR_SRC,
    CONTAINER_TAGS,
    INLINE_TAGS,
)

logger = logging.getLogger(__name__)

CHOICE_OPEN = "<choice>"
CHOICE_CLOSE = "</choice>"


class PlainTextFallback(BaseModel):
    """A message that could not be staged and is shown as escaped text."""

    message_id: str
    escaped: str
    error: str


class CompiledMessage(BaseModel):
    message_id: str
    commands: list[Command] = Field(default_factory=list)
    fallback: PlainTextFallback | None = None
    state: SceneState = Field(default_factory=SceneState)  # shadow state afterwards


# ── Inline content ─────────────────────────────────────────


def _append_text(node: ContentNode, text: str | None) -> None:
    if not text:
        return
    if node.children and node.children[-1].kind == "text":
        node.children[-1].text += text
    else:
        node.children.append(ContentNode(kind="text", text=text))


def _fill(node: ContentNode, el: etree._Element) -> None:
    _append_text(node, el.text)
    for child in el:
        if isinstance(child.tag, str):
            tag = child.tag.lower()
            kind = INLINE_TAGS.get(tag, "span")
            attrs = {str(k): str(v) for k, v in child.attrib.items()}
            if kind == "span":
                attrs["tag"] = tag
            sub = ContentNode(kind=kind, attrs=attrs)
            _fill(sub, child)
            node.children.append(sub)
        _append_text(node, child.tail)


def _trim(root: ContentNode) -> ContentNode:
    if root.children and root.children[0].kind == "text":
        root.children[0].text = root.children[0].text.lstrip()
    if root.children and root.children[-1].kind == "text":
        root.children[-1].text = root.children[-1].text.rstrip()
    root.children = [c for c in root.children if c.kind != "text" or c.text]
    return root


def content_of(el: etree._Element) -> ContentNode:
    """Rich content tree of an element's inline children."""
    root = ContentNode(kind="root")
    _fill(root, el)
    return _trim(root)


# ── Element helpers ────────────────────────────────────────


def _attr(el: etree._Element, name: str) -> str | None:
    value = el.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _text(el: etree._Element) -> str:
    return "".join(el.itertext()).strip()


def _seconds(raw: str | None) -> float:
    try:
        return max(0.0, float(raw or 0))
    except ValueError:
        return 0.0


def _top_level(root: etree._Element) -> Iterator[tuple[str, etree._Element]]:
    for el in root:
        if not isinstance(el.tag, str):
            continue
        tag = el.tag.lower()
        if tag in CONTAINER_TAGS:
            yield from _top_level(el)
        else:
            yield tag, el


def _build(tag: str, el: etree._Element, shadow: SceneState) -> Command | None:
    """One command for one element, snapshotting from `shadow`."""
    if tag == "background":
        src = _attr(el, ATTR_SRC)
        if not src:
            logger.warning("<background> without src skipped")
            return None
        return Background(src=src, previous_src=shadow.background)

    if tag == "enter":
        char_id = _attr(el, ATTR_ID)
        if not char_id:
            logger.warning("<enter> without id skipped")
            return None
        character = CharacterOnStage(
            id=char_id,
            expression=_attr(el, ATTR_EXPRESSION),
            position=_attr(el, ATTR_POSITION),
        )
        return Enter(character=character, previous=shadow.on_stage.get(char_id))

    if tag == "exit":
        char_id = _attr(el, ATTR_ID)
        if not char_id:
            logger.warning("<exit> without id skipped")
            return None
        return Exit(id=char_id, previous=shadow.on_stage.get(char_id))

    if tag == "dialogue":
        speaker = _attr(el, ATTR_FROM)
        content = content_of(el)
        if not speaker:
            return Narrate(content=content)
        on_stage = shadow.on_stage.get(speaker)
        return Dialogue(
            speaker=speaker,
            expression=_attr(el, ATTR_EXPRESSION),
            content=content,
            previous_expression=on_stage.expression if on_stage else None,
        )

    if tag == "narrate":
        return Narrate(content=content_of(el))

    if tag == "prompt":
        info = ""
        choices: list[str] = []
        for child in el:
            if not isinstance(child.tag, str):
                continue
            name = child.tag.lower()
            if name == "info" and not info:
                info = _text(child)
            elif name == "choice":
                text = _text(child)
                if text:
                    choices.append(text)
        if not choices:
            logger.warning("<prompt> without choices skipped")
            return None
        return Prompt(info=info, choices=choices)

    if tag == "pause":
        return Pause(seconds=_seconds(_attr(el, ATTR_FOR)))

    if tag in ("show", "image"):
        src = _attr(el, ATTR_SRC) or _attr(el, "filename")
        if not src:
            logger.warning("<%s> without src skipped", tag)
            return None
        caption = content_of(el)
        return ShowImage(
            src=src,
            from_id=_attr(el, ATTR_FROM),
            caption=caption if caption.children else None,
        )

    logger.debug("Unknown scene element <%s> skipped", tag)
    return None


# ── Messages ───────────────────────────────────────────────


def _compile_assistant(
    message: Message, shadow: SceneState, max_distance: int
) -> CompiledMessage:
    result = sanitize(message.content, max_distance=max_distance)
    if result.degraded:
        return CompiledMessage(
            message_id=message.id,
            fallback=PlainTextFallback(
                message_id=message.id,
                escaped=result.escaped,
                error=result.error or "",
            ),
            state=shadow,
        )
    if result.root is None:
        return CompiledMessage(message_id=message.id, state=shadow)

    commands: list[Command] = []
    for tag, el in _top_level(result.root):
        try:
            command = _build(tag, el, shadow)
        except ValueError as e:
            logger.warning("Invalid <%s> element skipped: %s", tag, e)
            continue
        if command is None:
            continue
        shadow = apply(command, shadow)
        commands.append(command)

    logger.debug("Compiled message %s into %d commands", message.id, len(commands))
    return CompiledMessage(message_id=message.id, commands=commands, state=shadow)


def _compile_user(message: Message, shadow: SceneState, persona_id: str) -> CompiledMessage:
    content = message.content.strip()
    if content.startswith(CHOICE_OPEN) and content.endswith(CHOICE_CLOSE):
        content = content[len(CHOICE_OPEN):-len(CHOICE_CLOSE)].strip()
    if not content:
        return CompiledMessage(message_id=message.id, state=shadow)

    node = ContentNode.of_text(content)
    command: Command
    # Quoted input is the player speaking; anything else is an action.
    if '"' in content:
        command = Dialogue(speaker=persona_id, content=node, user_action=True)
    else:
        command = Narrate(content=node)
    return CompiledMessage(message_id=message.id, commands=[command], state=shadow)


def compile_message(
    message: Message,
    shadow: SceneState,
    *,
    persona_id: str = "user",
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> CompiledMessage:
    """Compile one message against the shadow state left by earlier messages.

    Never raises on model output; `shadow` itself is not modified.
    """
    shadow = shadow.copy_state()
    if message.role == "assistant":
        return _compile_assistant(message, shadow, max_distance)
    if message.role == "user":
        return _compile_user(message, shadow, persona_id)
    return CompiledMessage(message_id=message.id, state=shadow)


def compile_history(
    messages: Iterable[Message],
    *,
    persona_id: str = "user",
    max_distance: int = DEFAULT_MAX_DISTANCE,
    initial: SceneState | None = None,
) -> list[CompiledMessage]:
    """Compile a conversation in chat order, threading the shadow state."""
    shadow = initial or SceneState()
    compiled: list[CompiledMessage] = []
    for message in messages:
        result = compile_message(
            message, shadow, persona_id=persona_id, max_distance=max_distance,
        )
        compiled.append(result)
        shadow = result.state
    return compiled

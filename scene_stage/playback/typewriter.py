"""Typewriter animator: reveal a rich content tree a character at a time.

The partially revealed tree is always structurally valid: element nodes are
cloned empty before their children are revealed into them, so a renderer can
draw every intermediate step.
"""

import asyncio
import logging
from collections.abc import Callable

from scene_stage.models import ContentNode

from .scheduler import Clock

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[ContentNode], None]


class RevealHandle:
    """One in-flight reveal. Skipping completes it; superseding stops it."""

    def __init__(self, target: str) -> None:
        self.target = target
        self.skipped = False
        self.superseded = False
        self._wake = asyncio.Event()

    def skip(self) -> None:
        self.skipped = True
        self._wake.set()

    def supersede(self) -> None:
        self.superseded = True
        self._wake.set()


class Typewriter:
    """Reveals content into named targets (e.g. "textbox", "caption").

    Args:
        clock:     Clock used for per-character delays and inline pauses.
        speed_ms:  Delay between characters in milliseconds; 0 reveals
                   each text run at once.
    """

    def __init__(self, clock: Clock, speed_ms: float = 25) -> None:
        self._clock = clock
        self.speed_ms = speed_ms
        self._active: dict[str, RevealHandle] = {}

    @property
    def delay(self) -> float:
        return max(0.0, self.speed_ms) / 1000

    def busy(self, target: str | None = None) -> bool:
        if target is None:
            return bool(self._active)
        return target in self._active

    def skip(self, target: str | None = None) -> bool:
        """Complete in-flight reveals instantly. True if anything was skipped."""
        handles = list(self._active.values()) if target is None else [
            h for h in (self._active.get(target),) if h is not None
        ]
        for handle in handles:
            handle.skip()
        return bool(handles)

    async def reveal(
        self,
        target: str,
        content: ContentNode,
        on_update: UpdateCallback | None = None,
    ) -> ContentNode:
        """Reveal `content` into `target`, replacing any reveal already there.

        Returns the revealed tree: complete unless this reveal was superseded.
        """
        previous = self._active.get(target)
        if previous is not None:
            logger.debug("Reveal on %s superseded", target)
            previous.supersede()
        handle = RevealHandle(target)
        self._active[target] = handle

        revealed = content.empty_clone()

        def emit() -> None:
            if on_update is not None and not handle.superseded:
                on_update(revealed)

        emit()
        try:
            await self._reveal_into(content, revealed, handle, emit)
        finally:
            if self._active.get(target) is handle:
                del self._active[target]
        return revealed

    async def _reveal_into(
        self,
        source: ContentNode,
        dest: ContentNode,
        handle: RevealHandle,
        emit: Callable[[], None],
    ) -> bool:
        for child in source.children:
            if handle.superseded:
                return False

            if child.kind == "text":
                node = ContentNode(kind="text")
                dest.children.append(node)
                if handle.skipped or self.delay == 0:
                    node.text = child.text
                    emit()
                    continue
                for char in child.text:
                    if handle.superseded:
                        return False
                    if handle.skipped:
                        node.text = child.text
                        emit()
                        break
                    node.text += char
                    emit()
                    await self._suspend(handle, self.delay)

            elif child.kind == "pause":
                dest.children.append(child.empty_clone())
                if not handle.skipped:
                    await self._suspend(handle, child.pause_seconds)

            else:
                node = child.empty_clone()
                dest.children.append(node)
                emit()
                if not await self._reveal_into(child, node, handle, emit):
                    return False
        return not handle.superseded

    async def _suspend(self, handle: RevealHandle, seconds: float) -> None:
        if seconds > 0 and not (handle.skipped or handle.superseded):
            await self._clock.wait(handle._wake, seconds)

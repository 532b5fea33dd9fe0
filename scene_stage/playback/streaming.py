"""Streaming adapter: feed model tokens into the playback engine.

Tokens are buffered per message id while the stream is open; nothing is
compiled from a half-written message. When the stream ends:

    complete — the text is compiled from the queue's tail state, appended,
               and animated across exactly the new commands.
    abort    — the partial text is closed off (`close_truncated`), run through
               the full pipeline, and followed by a "Generation stopped."
               narration marker.
    fail     — as abort, with a "Generation failed: ..." marker.

Navigation is locked on the engine from `begin` until the buffer is handed
over, so the user cannot move the cursor underneath an append.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Literal

from pydantic import BaseModel

from scene_stage.commands import Narrate
from scene_stage.llm import LLMError
from scene_stage.markup import close_truncated
from scene_stage.models import ContentNode, Message

from .engine import PlaybackEngine

logger = logging.getLogger(__name__)

STOPPED_TEXT = "Generation stopped."
FAILED_TEXT = "Generation failed: {error}"


class StreamResult(BaseModel):
    """What a finished stream left behind. `text` is what should be persisted."""

    message_id: str
    status: Literal["complete", "stopped", "failed"]
    text: str
    start: int
    stop: int
    error: str | None = None

    @property
    def indices(self) -> range:
        return range(self.start, self.stop)


class StreamingAdapter:
    """Buffers token streams per message id and hands finished text to the engine.

    `on_finish` is called with the result once the commands are queued and
    before they are animated, so persistence never depends on playback.
    """

    def __init__(
        self,
        engine: PlaybackEngine,
        on_finish: Callable[[StreamResult], None] | None = None,
    ) -> None:
        self.engine = engine
        self.on_finish = on_finish
        self._buffers: dict[str, list[str]] = {}

    @property
    def active(self) -> list[str]:
        return list(self._buffers)

    def text(self, message_id: str) -> str:
        return "".join(self._buffers.get(message_id, []))

    def begin(self, message_id: str) -> None:
        if message_id in self._buffers:
            raise ValueError(f"Stream {message_id!r} already open")
        self._buffers[message_id] = []
        self.engine.lock_navigation()
        logger.debug("Stream %s opened", message_id)

    def feed(self, message_id: str, token: str) -> None:
        buffer = self._buffers.get(message_id)
        if buffer is None:
            raise KeyError(f"No open stream {message_id!r}")
        buffer.append(token)

    def _take(self, message_id: str) -> str:
        if message_id not in self._buffers:
            raise KeyError(f"No open stream {message_id!r}")
        text = "".join(self._buffers.pop(message_id))
        self.engine.unlock_navigation()
        return text

    async def complete(self, message_id: str) -> StreamResult:
        text = self._take(message_id)
        indices = self.engine.append_message(
            Message(id=message_id, role="assistant", content=text)
        )
        logger.debug("Stream %s complete: %d commands", message_id, len(indices))
        result = StreamResult(
            message_id=message_id, status="complete", text=text,
            start=indices.start, stop=indices.stop,
        )
        return await self._play(result)

    async def abort(self, message_id: str) -> StreamResult:
        return await self._finish_partial(message_id, "stopped", STOPPED_TEXT, None)

    async def fail(self, message_id: str, error: Exception | str) -> StreamResult:
        reason = str(error) or type(error).__name__
        return await self._finish_partial(
            message_id, "failed", FAILED_TEXT.format(error=reason), reason,
        )

    async def _finish_partial(
        self,
        message_id: str,
        status: Literal["stopped", "failed"],
        notice: str,
        error: str | None,
    ) -> StreamResult:
        text = close_truncated(self._take(message_id))
        indices = self.engine.append_message(
            Message(id=message_id, role="assistant", content=text)
        )
        marker = self.engine.queue.append_commands(
            message_id, [Narrate(content=ContentNode.of_text(notice), marker=status)],
        )
        logger.info("Stream %s %s after %d commands", message_id, status, len(indices))
        result = StreamResult(
            message_id=message_id, status=status, text=text,
            start=indices.start, stop=marker.stop, error=error,
        )
        return await self._play(result)

    async def _play(self, result: StreamResult) -> StreamResult:
        if self.on_finish is not None:
            self.on_finish(result)
        await self.engine.play_appended(result.indices)
        return result

    async def consume(self, message_id: str, tokens: AsyncIterator[str]) -> StreamResult:
        """Drive a whole stream: begin, feed every token, then finish it.

        Cancellation of the consuming task counts as a user stop; transport
        errors and any other exception take the failed path. Neither propagates.
        """
        self.begin(message_id)
        try:
            async for token in tokens:
                self.feed(message_id, token)
        except asyncio.CancelledError:
            return await self.abort(message_id)
        except LLMError as exc:
            logger.warning("Stream %s failed: %s", message_id, exc)
            return await self.fail(message_id, exc)
        except Exception as exc:
            logger.exception("Stream %s broke unexpectedly", message_id)
            return await self.fail(message_id, exc)
        return await self.complete(message_id)

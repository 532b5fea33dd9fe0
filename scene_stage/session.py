"""Conversation session: one playback engine bound to one stored conversation.

Executes the turn loop for one player message:
  1. Persist the user message, compile it onto the queue and play it.
  2. Render the scene prompt from the characters and the stage at the tail
     of the queue (Handlebars, configurable via `scene_prompt`).
  3. Stream the assistant reply through the transport into the streaming
     adapter; the finished (or truncated) text is persisted as soon as it is
     queued, then animated.

Choices picked on a Prompt start the next turn with the choice as the player
message, wrapped in <choice> so it compiles back to the plain choice text.

Transport resolution: the injected TokenStream if any, else an
HttpTokenStream built from config["llm_connection"]. A missing or broken
connection surfaces as a failed stream, never as an exception.
"""

from __future__ import annotations

import logging
from typing import Any

from scene_stage import storage
from scene_stage.config import PlaybackSettings
from scene_stage.llm import HttpTokenStream, LLMError, TokenStream
from scene_stage.models import Message
from scene_stage.playback import (
    PlaybackEngine,
    PlaybackTask,
    StreamingAdapter,
    StreamResult,
)
from scene_stage.playback.scheduler import Clock
from scene_stage.prompts import PromptError, build_scene_context, scene_prompt

logger = logging.getLogger(__name__)


class SceneSession:
    def __init__(
        self,
        slug: str,
        *,
        config: dict[str, Any] | None = None,
        transport: TokenStream | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.slug = slug
        self.history = storage.ConversationHistory(slug)
        self._config = config if config is not None else storage.get_config()
        self._transport = transport
        self.engine = PlaybackEngine(
            settings=PlaybackSettings.from_config(self._config),
            clock=clock,
            characters=self.history,
            on_choice=self._on_choice,
        )
        self.streaming = StreamingAdapter(self.engine, on_finish=self._persist)
        self._turn: PlaybackTask | None = None

    # ── Lifecycle ──────────────────────────────────────────

    async def open(self) -> None:
        """Load the stored history and show its final state."""
        await self.engine.load(self.history.messages())

    async def rebuild(self) -> None:
        """Re-read messages and characters after an edit elsewhere."""
        self.history.reload()
        await self.engine.load(self.history.messages())

    def update_config(self, config: dict[str, Any]) -> None:
        self._config = config
        self.engine.update_settings(PlaybackSettings.from_config(config))

    def close(self) -> None:
        if self._turn is not None and not self._turn.done:
            self._turn.cancel()
        self.engine.close()

    # ── Turns ──────────────────────────────────────────────

    @property
    def turn_running(self) -> bool:
        return self._turn is not None and not self._turn.done

    def start_turn(self, text: str) -> PlaybackTask | None:
        """Run `send` in the background. None if a turn is already running."""
        if self.turn_running:
            logger.debug("Turn already running for %s, ignoring", self.slug)
            return None
        self._turn = PlaybackTask(f"turn:{self.slug}", self.send(text))
        return self._turn

    def stop(self) -> bool:
        """Stop the running turn; an open stream ends with a stopped marker."""
        if not self.turn_running:
            return False
        assert self._turn is not None
        return self._turn.cancel()

    async def send(self, text: str) -> StreamResult:
        user_message = Message(id=storage.new_message_id(), role="user", content=text)
        storage.append_messages(self.slug, [user_message])
        indices = self.engine.append_message(user_message)
        await self.engine.play_appended(indices)

        reply_id = storage.new_message_id()
        try:
            transport = self._transport_for()
            messages = self.build_messages()
        except (LLMError, PromptError) as e:
            logger.warning("Turn for %s cannot start: %s", self.slug, e)
            self.streaming.begin(reply_id)
            return await self.streaming.fail(reply_id, e)
        return await self.streaming.consume(reply_id, transport.stream(messages))

    def _transport_for(self) -> TokenStream:
        if self._transport is not None:
            return self._transport
        return HttpTokenStream.from_connection(self._config["llm_connection"])

    def _on_choice(self, text: str) -> None:
        # A choice made mid-playback queues behind the turn that showed it.
        previous = self._turn if self.turn_running else None
        self._turn = PlaybackTask(
            f"turn:{self.slug}", self._send_after(previous, f"<choice>{text}</choice>"),
        )

    async def _send_after(self, previous: PlaybackTask | None, text: str) -> StreamResult:
        if previous is not None:
            await previous.join()
        return await self.send(text)

    def _persist(self, result: StreamResult) -> None:
        if not result.text:
            return
        storage.append_messages(
            self.slug,
            [Message(id=result.message_id, role="assistant", content=result.text)],
        )

    # ── Prompt ─────────────────────────────────────────────

    def render_prompt(self) -> str:
        conversation = storage.get_conversation(self.slug) or {}
        context = build_scene_context(
            self.history.characters(),
            self.engine.queue.tail_state,
            persona_id=self.engine.settings.persona_id,
            persona_name=conversation.get("persona_name", ""),
            title=conversation.get("title", ""),
        )
        return scene_prompt(self._config, context)

    def build_messages(self) -> list[dict[str, str]]:
        """System prompt followed by the stored chat history."""
        messages = [{"role": "system", "content": self.render_prompt()}]
        for message in self.history.messages():
            if message.role == "system":
                continue
            messages.append({"role": message.role, "content": message.content})
        return messages

"""Playback engine: a state machine over the command queue cursor.

The engine exclusively owns the live SceneState and the queue. Navigation:

    advance_to(i)  — animated forward from cursor+1 to i. Intermediate wait
                     points suspend until advance()/select_choice(); the
                     target is presented and left idle.
    jump_to(i)     — instant: silent replay from the empty state, then the
                     final stage and the target's UI are drawn once.
    retreat_to(i)  — revert from the cursor down to (excluding) i, redraw,
                     re-present i without animation.
    next()/previous() — move to the nearest wait point.

Only one playback operation runs at a time; requests made while one is
running are ignored (the call returns False). advance(), select_choice(),
skip() and cancel() are signals into the running operation and always go
through. While a stream is outstanding navigation is locked.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from scene_stage.commands import (
    Dialogue,
    Narrate,
    Prompt,
    ShowImage,
    revert,
)
from scene_stage.config import PlaybackSettings
from scene_stage.markup import compile_history, compile_message
from scene_stage.models import Message, SceneState

from .context import AnimatedContext, SilentContext, run_commands
from .queue import CommandQueue
from .scheduler import AsyncioClock, Clock, PlaybackTask
from .stage import CharacterLookup, Stage, StageView

logger = logging.getLogger(__name__)

ChoiceCallback = Callable[[str], Any]


class PlaybackEngine:
    def __init__(
        self,
        *,
        settings: PlaybackSettings | None = None,
        clock: Clock | None = None,
        characters: CharacterLookup | None = None,
        stage: Stage | None = None,
        on_choice: ChoiceCallback | None = None,
    ) -> None:
        self.settings = settings or PlaybackSettings()
        self.clock = clock or AsyncioClock()
        self.queue = CommandQueue()
        self.stage = stage or Stage(
            characters,
            placeholder_avatar=self.settings.placeholder_avatar,
            default_background=self.settings.default_background,
            persona_id=self.settings.persona_id,
        )
        self._animated = AnimatedContext(self.stage, self.clock, self.settings)
        self._silent = SilentContext(self.settings)
        self._state = SceneState()
        self._on_choice = on_choice
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._running: PlaybackTask | None = None
        self._task: PlaybackTask | None = None
        self._locks = 0
        self._closed = False

    # ── Read-only views ────────────────────────────────────

    @property
    def state(self) -> SceneState:
        return self._state.copy_state()

    @property
    def cursor(self) -> int:
        return self.queue.cursor

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def idle(self) -> bool:
        """Nothing is playing; at most a wait point is presented."""
        return not self._busy

    @property
    def waiting(self) -> bool:
        return self._animated.resume.waiting

    @property
    def suspended_at(self) -> str | None:
        return self._animated.suspended_at

    @property
    def navigation_locked(self) -> bool:
        return self._locks > 0

    @property
    def can_navigate(self) -> bool:
        """A user navigation request would be accepted right now."""
        return not self._busy and not self.navigation_locked

    @property
    def can_go_forward(self) -> bool:
        return self.queue.cursor < self.queue.last_index

    @property
    def can_go_back(self) -> bool:
        return self.queue.previous_wait_point(self.queue.cursor) > -1

    def view(self) -> StageView:
        return self.stage.view()

    def next_wait_point(self, start: int) -> int:
        return self.queue.next_wait_point(start)

    def previous_wait_point(self, start: int) -> int:
        return self.queue.previous_wait_point(start)

    # ── Settings / lifecycle ───────────────────────────────

    def update_settings(self, settings: PlaybackSettings) -> None:
        self.settings = settings
        self._animated.settings = settings
        self._animated.typewriter.speed_ms = settings.typewriter_speed
        self._silent.settings = settings

    def lock_navigation(self) -> None:
        self._locks += 1
        self._publish_status()

    def unlock_navigation(self) -> None:
        self._locks = max(0, self._locks - 1)
        self._publish_status()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def close(self) -> None:
        """Stop playback and release every stage subscription."""
        self._closed = True
        self.cancel()
        self.stage.close()

    # ── Guard ──────────────────────────────────────────────

    async def _guarded(
        self,
        name: str,
        op: Callable[..., Awaitable[None]],
        *args: Any,
        user: bool = True,
    ) -> bool:
        if self._closed:
            logger.debug("Ignoring %s: engine closed", name)
            return False
        if self._busy:
            logger.debug("Ignoring %s: playback already running", name)
            return False
        if user and self.navigation_locked:
            logger.debug("Ignoring %s: navigation locked while streaming", name)
            return False
        self._busy = True
        self._idle.clear()
        self._running = PlaybackTask(name, op(*args))
        self._publish_status()
        try:
            await self._running.join()
        except asyncio.CancelledError:
            # The caller was cancelled, not just the operation.
            self._running.cancel()
            await self._running.join()
            raise
        finally:
            self._busy = False
            self._running = None
            self._idle.set()
            self._publish_status()
        return True

    def start(self, coro: Awaitable[Any], name: str = "playback") -> PlaybackTask:
        """Run a playback operation in the background."""
        self._task = PlaybackTask(name, coro)  # type: ignore[arg-type]
        return self._task

    # ── History ────────────────────────────────────────────

    async def load(self, messages: Iterable[Message]) -> None:
        """Compile a whole conversation and jump to its last command."""
        if self._busy:
            self.cancel()
            await self.wait_idle()
        self.queue.clear()
        self._state = SceneState()
        for compiled in compile_history(
            messages,
            persona_id=self.settings.persona_id,
            max_distance=self.settings.repair_max_distance,
        ):
            self.queue.append(compiled)
        self.stage.set_fallbacks(list(self.queue.fallbacks))
        logger.debug("Loaded %d commands", len(self.queue))
        await self._guarded("load", self._jump, self.queue.last_index, True, user=False)

    async def rebuild(self, messages: Iterable[Message]) -> None:
        """Recompile after a history edit; the view lands on the new end."""
        await self.load(messages)

    def append_message(self, message: Message) -> range:
        """Compile one new message from the queue's tail state and queue it."""
        compiled = compile_message(
            message,
            self.queue.tail_state,
            persona_id=self.settings.persona_id,
            max_distance=self.settings.repair_max_distance,
        )
        indices = self.queue.append(compiled)
        if compiled.fallback is not None:
            self.stage.set_fallbacks(list(self.queue.fallbacks))
        self._publish_status()
        return indices

    # ── Navigation ─────────────────────────────────────────

    async def advance_to(self, index: int) -> bool:
        return await self._guarded("advance_to", self._advance, index)

    async def retreat_to(self, index: int) -> bool:
        return await self._guarded("retreat_to", self._retreat, index)

    async def jump_to(self, index: int) -> bool:
        return await self._guarded("jump_to", self._jump, index)

    async def next(self) -> bool:
        target = self.queue.next_wait_point(self.queue.cursor)
        if target == -1:
            if self.queue.cursor >= self.queue.last_index:
                return False
            target = self.queue.last_index
        return await self.advance_to(target)

    async def previous(self) -> bool:
        target = self.queue.previous_wait_point(self.queue.cursor)
        if target == -1:
            return False
        return await self.retreat_to(target)

    async def play_appended(self, indices: range) -> None:
        """Animate exactly across freshly appended commands."""
        while not await self._guarded("play_appended", self._play_appended, indices, user=False):
            if self._closed:
                return
            await self.wait_idle()

    async def _play_appended(self, indices: range) -> None:
        if not indices:
            return
        if self.queue.cursor < indices.start - 1:
            await self._jump(indices.start - 1)
        await self._advance(indices.stop - 1)

    def _commit(self, index: int, state: SceneState) -> None:
        self._state = state
        self.queue.cursor = index
        self._publish_status()

    async def _advance(self, index: int) -> None:
        target = self.queue.clamp(index)
        if target <= self.queue.cursor:
            return
        steps = [(i, self.queue[i]) for i in range(self.queue.cursor + 1, target + 1)]
        await run_commands(
            steps, self._state, self._animated, target=target, on_step=self._commit,
        )

    async def _jump(self, index: int, force: bool = False) -> None:
        target = self.queue.clamp(index)
        if target == self.queue.cursor and not force:
            return
        steps = [(i, self.queue[i]) for i in range(target + 1)]
        state = await run_commands(steps, SceneState(), self._silent, target=target)
        self._commit(target, state)
        self.stage.render(state)
        self._present_instant(target)

    async def _retreat(self, index: int) -> None:
        target = self.queue.clamp(index)
        if target >= self.queue.cursor:
            return
        state = self._state
        for i in range(self.queue.cursor, target, -1):
            state = revert(self.queue[i], state)
            self._commit(i - 1, state)
        self.stage.render(state)
        self._present_instant(target)

    def _present_instant(self, index: int) -> None:
        """Draw a command's UI in its finished form."""
        if index < 0:
            self.stage.clear_dialogue()
            return
        command = self.queue[index]
        match command:
            case Dialogue(speaker=speaker, content=content, user_action=user_action):
                self.stage.show_text(speaker, content, complete=True, user_action=user_action)
            case Narrate(content=content):
                self.stage.show_text(None, content, complete=True)
            case ShowImage(src=src, from_id=from_id, caption=caption):
                self.stage.show_image(src, from_id, caption, complete=True)
            case Prompt(info=info, choices=choices):
                self.stage.show_choices(info, choices)
            case _:
                self.stage.clear_dialogue()

    # ── User signals ───────────────────────────────────────

    def advance(self) -> bool:
        """Resolve the current wait point, or step to the next one when idle."""
        if self._animated.resume.waiting:
            return self._animated.resume.fire()
        if not self.can_navigate or not self.can_go_forward:
            return False
        self.start(self.next(), name="next")
        return True

    def skip(self) -> bool:
        """Finish the current reveal instantly; later commands still play."""
        return self._animated.typewriter.skip()

    def select_choice(self, text: str) -> bool:
        """Answer a Prompt. Emits the choice as an outbound user message."""
        if self.navigation_locked:
            return False
        awaited = self._animated.waiting_on
        if self._animated.resume.waiting and isinstance(awaited, Prompt):
            if text not in awaited.choices:
                return False
            self._emit_choice(text)
            return self._animated.resume.fire(text)
        if self._busy or self.queue.cursor < 0:
            return False
        current = self.queue[self.queue.cursor]
        if not isinstance(current, Prompt) or text not in current.choices:
            return False
        self._emit_choice(text)
        self.stage.clear_dialogue()
        return True

    def _emit_choice(self, text: str) -> None:
        logger.debug("Choice selected: %r", text)
        if self._on_choice is not None:
            self._on_choice(text)

    def cancel(self) -> bool:
        """Abort the running playback operation, keeping cursor and state."""
        if self._running is not None and not self._running.done:
            logger.debug("Cancelling %s", self._running.name)
            return self._running.cancel()
        return False

    # ── Status ─────────────────────────────────────────────

    def _publish_status(self) -> None:
        cursor = self.queue.cursor
        self.stage.set_status(
            cursor=cursor,
            length=len(self.queue),
            can_go_back=self.can_go_back,
            can_go_forward=self.can_go_forward,
            busy=self._busy,
            streaming=self.navigation_locked,
        )

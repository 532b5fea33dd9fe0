"""Playback contexts and the shared command executor.

Every command runs through one routine, `run_commands`, which applies it to
the scene state and then plays its presentation through a PlaybackContext:

    AnimatedContext — real delays, typewriter reveals, waits for the user.
    SilentContext   — every step is a no-op; used to replay history in one
                      pass when jumping, so the resulting state is exactly
                      what incremental playback would have produced.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

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
from scene_stage.config import PlaybackSettings
from scene_stage.models import ContentNode, SceneState

from .scheduler import Clock, Signal
from .stage import Stage
from .typewriter import Typewriter

logger = logging.getLogger(__name__)

TEXTBOX = "textbox"


class PlaybackContext(Protocol):
    settings: PlaybackSettings

    def render(self, state: SceneState) -> None: ...

    async def transition(self, name: str, seconds: float) -> None: ...

    async def present_text(
        self, speaker_id: str | None, content: ContentNode, *, user_action: bool = False
    ) -> None: ...

    async def present_image(self, command: ShowImage) -> None: ...

    def present_choices(self, info: str, choices: list[str]) -> None: ...

    async def pause(self, seconds: float) -> None: ...

    async def wait_for_user(self, command: Command) -> Any: ...


class SilentContext:
    """Runs commands with no timing and no visual side effects."""

    def __init__(self, settings: PlaybackSettings | None = None) -> None:
        self.settings = settings or PlaybackSettings()

    def render(self, state: SceneState) -> None:
        pass

    async def transition(self, name: str, seconds: float) -> None:
        pass

    async def present_text(
        self, speaker_id: str | None, content: ContentNode, *, user_action: bool = False
    ) -> None:
        pass

    async def present_image(self, command: ShowImage) -> None:
        pass

    def present_choices(self, info: str, choices: list[str]) -> None:
        pass

    async def pause(self, seconds: float) -> None:
        pass

    async def wait_for_user(self, command: Command) -> Any:
        return None


class AnimatedContext:
    """Plays commands onto a Stage with real (or virtual) time.

    `resume` is the signal that wait points suspend on; the engine fires it
    for advance() and select_choice().
    """

    def __init__(
        self,
        stage: Stage,
        clock: Clock,
        settings: PlaybackSettings,
        typewriter: Typewriter | None = None,
    ) -> None:
        self.stage = stage
        self.clock = clock
        self.settings = settings
        self.typewriter = typewriter or Typewriter(clock, settings.typewriter_speed)
        self.resume = Signal("wait_for_user")
        self.suspended_at: str | None = None
        self.waiting_on: Command | None = None

    def render(self, state: SceneState) -> None:
        self.stage.render(state)

    async def transition(self, name: str, seconds: float) -> None:
        self.stage.set_transition(name)
        self.suspended_at = "transition"
        try:
            await self.clock.sleep(seconds)
        finally:
            self.suspended_at = None
            self.stage.set_transition(None)

    async def _reveal(self, content: ContentNode) -> None:
        self.suspended_at = "reveal"
        try:
            await self.typewriter.reveal(
                TEXTBOX, content,
                on_update=lambda node: self.stage.update_text(node),
            )
        finally:
            self.suspended_at = None
        self.stage.update_text(content, complete=True)

    async def present_text(
        self, speaker_id: str | None, content: ContentNode, *, user_action: bool = False
    ) -> None:
        self.stage.show_text(
            speaker_id, content.empty_clone(), complete=False, user_action=user_action,
        )
        await self._reveal(content)

    async def present_image(self, command: ShowImage) -> None:
        caption = command.caption
        self.stage.show_image(
            command.src, command.from_id,
            caption.empty_clone() if caption is not None else None,
            complete=caption is None,
        )
        if caption is not None:
            await self._reveal(caption)

    def present_choices(self, info: str, choices: list[str]) -> None:
        self.stage.show_choices(info, choices)

    async def pause(self, seconds: float) -> None:
        self.suspended_at = "pause"
        try:
            await self.clock.sleep(seconds)
        finally:
            self.suspended_at = None

    async def wait_for_user(self, command: Command) -> Any:
        """Suspend at a wait point until advance / choice (or auto-advance)."""
        timeout = None
        if self.settings.auto_advance and not isinstance(command, Prompt):
            timeout = self.settings.auto_advance_delay
        self.suspended_at = "choice" if isinstance(command, Prompt) else "advance"
        self.waiting_on = command
        self.stage.set_waiting(True)
        try:
            _, value = await self.resume.wait(self.clock, timeout)
        finally:
            self.suspended_at = None
            self.waiting_on = None
            self.stage.set_waiting(False)
        return value


async def perform(
    command: Command,
    before: SceneState,
    after: SceneState,
    ctx: PlaybackContext,
    *,
    wait: bool = True,
) -> None:
    """Play the presentation of one command already applied to the state.

    With `wait=False` a wait point is presented but not waited on; playback
    stops there and the engine sits idle on it.
    """
    settings = ctx.settings
    match command:
        case Background():
            await ctx.transition("fade_out", settings.fade_duration)
            ctx.render(after)
            await ctx.transition("fade_in", settings.fade_duration)
        case Enter(character=character):
            ctx.render(after)
            await ctx.transition(f"enter:{character.id}", settings.enter_duration)
        case Exit(id=char_id):
            if char_id in before.on_stage:
                await ctx.transition(f"exit:{char_id}", settings.exit_duration)
            ctx.render(after)
        case Dialogue(speaker=speaker, content=content, user_action=user_action):
            if after != before:
                ctx.render(after)
            await ctx.present_text(speaker, content, user_action=user_action)
            if wait:
                await ctx.wait_for_user(command)
        case Narrate(content=content):
            await ctx.present_text(None, content)
            if wait:
                await ctx.wait_for_user(command)
        case ShowImage():
            await ctx.present_image(command)
            if wait:
                await ctx.wait_for_user(command)
        case Prompt(info=info, choices=choices):
            ctx.present_choices(info, choices)
            if wait:
                await ctx.wait_for_user(command)
        case Pause(seconds=seconds):
            await ctx.pause(seconds)
        case _:
            raise TypeError(f"Unknown command {command!r}")


async def run_commands(
    commands: Iterable[tuple[int, Command]],
    state: SceneState,
    ctx: PlaybackContext,
    *,
    target: int | None = None,
    on_step: Callable[[int, SceneState], None] | None = None,
) -> SceneState:
    """Apply and perform commands in order; the shared execution routine.

    `on_step` sees each new state right after it is applied and before any
    suspension, so a cancelled run leaves the caller consistent. The command
    at `target` is presented without waiting.
    """
    for index, command in commands:
        before = state
        state = apply(command, before)
        if on_step is not None:
            on_step(index, state)
        await perform(command, before, state, ctx, wait=index != target)
    return state

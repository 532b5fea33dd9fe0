import asyncio

import pytest

from scene_stage.config import PlaybackSettings
from scene_stage.playback import PlaybackEngine, VirtualClock

# No reveal delay and no transitions unless a test asks for them.
FAST = {
    "typewriter_speed": 0,
    "fade_duration": 0,
    "enter_duration": 0,
    "exit_duration": 0,
}


@pytest.fixture
def make_engine():
    def _make(characters=None, on_choice=None, **settings) -> PlaybackEngine:
        return PlaybackEngine(
            settings=PlaybackSettings(**{**FAST, **settings}),
            clock=VirtualClock(),
            characters=characters,
            on_choice=on_choice,
        )
    return _make


@pytest.fixture
def drive():
    """Run a playback coroutine to the end, resolving every wait point it hits."""
    async def _drive(engine: PlaybackEngine, coro, max_steps: int = 10_000):
        task = engine.start(coro)
        for _ in range(max_steps):
            if task.done:
                break
            await asyncio.sleep(0)
            if engine.waiting:
                engine.advance()
        else:
            task.cancel()
            raise AssertionError("playback did not finish")
        return await task.join()
    return _drive


@pytest.fixture
def settle():
    """Let background tasks run until `predicate` holds."""
    async def _settle(predicate, max_steps: int = 1_000) -> None:
        for _ in range(max_steps):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition never became true")
    return _settle

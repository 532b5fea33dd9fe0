"""Cooperative scheduling primitives for playback.

Playback is one sequential asyncio task that suspends at named points:
reveal delays, pauses, cross-fades and waits for the user. A suspension
resumes either from a timer (the Clock) or from an external Signal fired by
advance / skip / choice events.

Two clocks:

    AsyncioClock — real time, backed by the running event loop.
    VirtualClock — virtual time; every sleep returns at once and advances
                   `now`. Tests use it so timing is exact and instant.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...

    async def wait(self, event: asyncio.Event, timeout: float | None = None) -> bool:
        """Suspend until `event` is set or `timeout` elapses. True if set."""
        ...


class AsyncioClock:
    def now(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))

    async def wait(self, event: asyncio.Event, timeout: float | None = None) -> bool:
        if timeout is None:
            await event.wait()
            return True
        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError:
            return event.is_set()
        return True


class VirtualClock:
    """Clock whose time only moves when something sleeps on it."""

    def __init__(self) -> None:
        self._now = 0.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        seconds = max(0.0, seconds)
        self._now += seconds
        self.sleeps.append(seconds)
        await asyncio.sleep(0)

    async def wait(self, event: asyncio.Event, timeout: float | None = None) -> bool:
        if timeout is None:
            await event.wait()
            return True
        # Give already-scheduled signals a chance to land first.
        await asyncio.sleep(0)
        if event.is_set():
            return True
        await self.sleep(timeout)
        return event.is_set()


class Signal:
    """A named suspension point resumed by an external event.

    `fire` only has an effect while a task is waiting, so a stray click
    cannot pre-resolve a wait point that has not been reached yet.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = asyncio.Event()
        self._value: Any = None
        self._waiting = False

    @property
    def waiting(self) -> bool:
        return self._waiting

    def fire(self, value: Any = None) -> bool:
        if not self._waiting:
            return False
        self._value = value
        self._event.set()
        return True

    async def wait(self, clock: Clock | None = None, timeout: float | None = None) -> tuple[bool, Any]:
        """Suspend until fired. Returns (fired, value); fired is False on timeout."""
        self._event.clear()
        self._value = None
        self._waiting = True
        try:
            if clock is None or timeout is None:
                await self._event.wait()
                fired = True
            else:
                fired = await clock.wait(self._event, timeout)
            return fired, self._value
        finally:
            self._waiting = False
            self._event.clear()


class PlaybackTask:
    """A running playback operation that can be cancelled or awaited."""

    def __init__(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        self.name = name
        self._task: asyncio.Task = asyncio.create_task(coro, name=name)
        self._task.add_done_callback(self._log_failure)

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        return self._task.cancel()

    async def join(self) -> Any:
        await asyncio.wait({self._task})
        if self._task.cancelled():
            return None
        return self._task.result()

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Playback task %s failed: %r", self.name, exc)

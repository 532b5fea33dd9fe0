"""Command queue: every message's commands in chat order, plus a cursor."""

from collections.abc import Iterator

from pydantic import BaseModel

from scene_stage.commands import Command
from scene_stage.markup import CompiledMessage, PlainTextFallback
from scene_stage.models import SceneState


class MessageSpan(BaseModel):
    """Commands [start, stop) came from message `message_id`."""

    message_id: str
    start: int
    stop: int


class CommandQueue:
    """Ordered commands with a cursor in [-1, len - 1].

    The state after executing commands[0..cursor] from an empty SceneState is
    the current state. Only the playback engine moves the cursor.
    """

    def __init__(self) -> None:
        self._commands: list[Command] = []
        self._spans: list[MessageSpan] = []
        self._fallbacks: list[PlainTextFallback] = []
        self._tail_state = SceneState()
        self.cursor = -1

    def __len__(self) -> int:
        return len(self._commands)

    def __getitem__(self, index: int) -> Command:
        return self._commands[index]

    def __iter__(self) -> Iterator[Command]:
        return iter(self._commands)

    @property
    def commands(self) -> tuple[Command, ...]:
        return tuple(self._commands)

    @property
    def spans(self) -> tuple[MessageSpan, ...]:
        return tuple(self._spans)

    @property
    def fallbacks(self) -> tuple[PlainTextFallback, ...]:
        return tuple(self._fallbacks)

    @property
    def tail_state(self) -> SceneState:
        """Shadow state after every queued command; the next message compiles from here."""
        return self._tail_state.copy_state()

    @property
    def last_index(self) -> int:
        return len(self._commands) - 1

    def clear(self) -> None:
        self._commands.clear()
        self._spans.clear()
        self._fallbacks.clear()
        self._tail_state = SceneState()
        self.cursor = -1

    def append(self, compiled: CompiledMessage) -> range:
        """Queue one compiled message. Returns the indices it occupies."""
        start = len(self._commands)
        self._commands.extend(compiled.commands)
        stop = len(self._commands)
        self._spans.append(MessageSpan(message_id=compiled.message_id, start=start, stop=stop))
        if compiled.fallback is not None:
            self._fallbacks.append(compiled.fallback)
        self._tail_state = compiled.state.copy_state()
        return range(start, stop)

    def append_commands(self, message_id: str, commands: list[Command]) -> range:
        """Queue commands that change no state, e.g. synthetic notices."""
        start = len(self._commands)
        self._commands.extend(commands)
        for span in self._spans:
            if span.message_id == message_id and span.stop == start:
                span.stop = len(self._commands)
                break
        else:
            self._spans.append(
                MessageSpan(message_id=message_id, start=start, stop=len(self._commands))
            )
        return range(start, len(self._commands))

    def span_of(self, message_id: str) -> MessageSpan | None:
        for span in self._spans:
            if span.message_id == message_id:
                return span
        return None

    def clamp(self, index: int) -> int:
        return max(-1, min(index, self.last_index))

    def next_wait_point(self, start: int) -> int:
        """Index of the first wait point after `start`, or -1."""
        for i in range(max(start + 1, 0), len(self._commands)):
            if self._commands[i].wait_point:
                return i
        return -1

    def previous_wait_point(self, start: int) -> int:
        """Index of the last wait point before `start`, or -1."""
        for i in range(min(start, len(self._commands)) - 1, -1, -1):
            if self._commands[i].wait_point:
                return i
        return -1

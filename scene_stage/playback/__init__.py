"""Command playback: queue, scheduler, typewriter, stage and engine."""

from .context import AnimatedContext, SilentContext, run_commands  # noqa: F401
from .engine import PlaybackEngine  # noqa: F401
from .queue import CommandQueue, MessageSpan  # noqa: F401
from .scheduler import AsyncioClock, PlaybackTask, Signal, VirtualClock  # noqa: F401
from .stage import Stage, StageView, Subscription  # noqa: F401
from .streaming import StreamingAdapter, StreamResult  # noqa: F401
from .typewriter import Typewriter  # noqa: F401

"""Tests for the command queue."""

from scene_stage.commands import Background, Narrate, Pause
from scene_stage.markup import compile_message
from scene_stage.models import ContentNode, Message, SceneState
from scene_stage.playback import CommandQueue


def _compiled(content: str, msg_id: str, shadow: SceneState | None = None):
    return compile_message(Message(id=msg_id, role="assistant", content=content),
                           shadow or SceneState())


def test_empty_queue():
    queue = CommandQueue()
    assert len(queue) == 0
    assert queue.cursor == -1
    assert queue.last_index == -1
    assert queue.next_wait_point(-1) == -1
    assert queue.previous_wait_point(0) == -1


def test_append_returns_range_and_span():
    queue = CommandQueue()
    first = queue.append(_compiled('<background src="a.png"/><narrate>One</narrate>', "m1"))
    second = queue.append(_compiled("<narrate>Two</narrate>", "m2", queue.tail_state))
    assert first == range(0, 2)
    assert second == range(2, 3)
    assert [s.message_id for s in queue.spans] == ["m1", "m2"]
    assert queue.span_of("m2").start == 2
    assert queue.span_of("nope") is None


def test_tail_state_tracks_shadow():
    queue = CommandQueue()
    queue.append(_compiled('<background src="a.png"/>', "m1"))
    assert queue.tail_state.background == "a.png"
    queue.tail_state.background = "mutated"
    assert queue.tail_state.background == "a.png"


def test_fallbacks_recorded():
    queue = CommandQueue()
    queue.append(_compiled("<narrate>broken", "m1"))
    assert [f.message_id for f in queue.fallbacks] == ["m1"]
    assert len(queue) == 0


def test_append_commands_extends_message_span():
    queue = CommandQueue()
    queue.append(_compiled("<narrate>Partial</narrate>", "m1"))
    added = queue.append_commands("m1", [Narrate(content=ContentNode.of_text("stop"), marker="stopped")])
    assert added == range(1, 2)
    assert queue.span_of("m1").stop == 2
    assert len(queue.spans) == 1


def test_wait_point_scans():
    queue = CommandQueue()
    queue.append(_compiled(
        '<background src="a.png"/><narrate>A</narrate><pause for="1"/><narrate>B</narrate>', "m1"
    ))
    assert queue.next_wait_point(-1) == 1
    assert queue.next_wait_point(1) == 3
    assert queue.next_wait_point(3) == -1
    assert queue.previous_wait_point(3) == 1
    assert queue.previous_wait_point(1) == -1


def test_clamp():
    queue = CommandQueue()
    queue.append_commands("m", [Pause(seconds=0), Background(src="x")])
    assert queue.clamp(-5) == -1
    assert queue.clamp(99) == 1
    assert queue.clamp(0) == 0


def test_clear():
    queue = CommandQueue()
    queue.append(_compiled('<background src="a.png"/>', "m1"))
    queue.cursor = 0
    queue.clear()
    assert len(queue) == 0 and queue.cursor == -1
    assert queue.tail_state == SceneState()

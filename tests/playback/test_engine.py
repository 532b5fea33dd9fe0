"""Tests for the playback engine: navigation, wait points, guard, events."""

import asyncio

import pytest

from scene_stage.commands import Dialogue, Narrate, Prompt, apply
from scene_stage.models import CharacterOnStage, Message, SceneState

HISTORY = [
    Message(id="m1", role="assistant", content=(
        '<scene><background src="forest.png"/>'
        '<enter id="kai" expression="calm" position="left"/>'
        '<dialogue from="kai" expression="happy">Hello</dialogue>'
        '<enter id="mira" position="right"/>'
        '<narrate>They meet.</narrate></scene>'
    )),
    Message(id="u1", role="user", content='"Hi both!"'),
    Message(id="m2", role="assistant", content=(
        '<dialogue from="mira" expression="shy">Oh. Hello.</dialogue>'
        '<exit id="kai"/>'
        '<background src="river.png"/>'
        '<pause for="1"/>'
        '<narrate>Kai is gone.</narrate>'
    )),
]


def _replay(engine, index: int) -> SceneState:
    state = SceneState()
    for command in engine.queue.commands[:index + 1]:
        state = apply(command, state)
    return state


async def _loaded(make_engine, **settings):
    engine = make_engine(**settings)
    await engine.load(HISTORY)
    return engine


# ── Loading ──────────────────────────────────────────────


async def test_load_jumps_to_last_command(make_engine):
    engine = await _loaded(make_engine)
    assert engine.cursor == len(engine.queue) - 1
    assert engine.state == _replay(engine, engine.cursor)
    view = engine.view()
    assert view.background == "river.png"
    assert [c.id for c in view.characters] == ["mira"]
    assert view.textbox.content.plain_text() == "Kai is gone."
    assert view.textbox.complete
    assert not engine.busy


async def test_scenario_d_empty_queue_is_idle(make_engine):
    engine = make_engine()
    await engine.load([Message(id="m", role="assistant", content="")])
    assert len(engine.queue) == 0
    assert engine.cursor == -1
    assert not engine.busy
    assert await engine.next() is False
    assert engine.advance() is False


# ── Path independence ────────────────────────────────────


async def test_jump_matches_replay_for_every_index(make_engine):
    engine = await _loaded(make_engine)
    for index in range(-1, len(engine.queue)):
        assert await engine.jump_to(index)
        assert engine.cursor == index
        assert engine.state == _replay(engine, index)


async def test_advance_matches_replay_for_every_index(make_engine, drive):
    engine = await _loaded(make_engine)
    for index in range(len(engine.queue)):
        await engine.jump_to(-1)
        await drive(engine, engine.advance_to(index))
        assert engine.cursor == index
        assert engine.state == _replay(engine, index)


async def test_advance_retreat_advance_round_trip(make_engine, drive):
    engine = await _loaded(make_engine)
    last = len(engine.queue) - 1
    for back in range(-1, last):
        await engine.jump_to(-1)
        await drive(engine, engine.advance_to(last))
        assert await engine.retreat_to(back)
        assert engine.state == _replay(engine, back)
        await drive(engine, engine.advance_to(last))
        assert engine.state == _replay(engine, last)


async def test_scenario_e_retreat_before_exit_restores_character(make_engine):
    engine = await _loaded(make_engine)
    exit_index = next(i for i, c in enumerate(engine.queue) if c.kind == "exit")
    assert "kai" not in engine.state.on_stage
    await engine.retreat_to(exit_index - 1)
    assert engine.state.on_stage["kai"] == CharacterOnStage(
        id="kai", expression="happy", position="left"
    )


async def test_out_of_range_is_clamped(make_engine):
    engine = await _loaded(make_engine)
    await engine.jump_to(-50)
    assert engine.cursor == -1
    await engine.jump_to(500)
    assert engine.cursor == len(engine.queue) - 1


# ── Wait points ──────────────────────────────────────────


async def test_intermediate_wait_points_suspend(make_engine, settle):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)
    last = len(engine.queue) - 1
    task = engine.start(engine.advance_to(last))
    await settle(lambda: engine.waiting)
    first_wait = engine.queue.next_wait_point(-1)
    assert engine.cursor == first_wait
    assert engine.busy
    assert engine.view().waiting
    assert engine.advance()
    await settle(lambda: engine.waiting and engine.cursor > first_wait)
    assert engine.cursor == engine.queue.next_wait_point(first_wait)
    task.cancel()
    await task.join()


async def test_target_wait_point_is_presented_not_awaited(make_engine):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)
    first_wait = engine.queue.next_wait_point(-1)
    assert await engine.advance_to(first_wait)
    assert not engine.busy
    assert not engine.waiting
    textbox = engine.view().textbox
    assert textbox.speaker_id == "kai"
    assert textbox.complete


async def test_next_and_previous_move_between_wait_points(make_engine):
    engine = await _loaded(make_engine)
    waits = [i for i, c in enumerate(engine.queue) if c.wait_point]
    await engine.jump_to(-1)
    for index in waits:
        assert await engine.next()
        assert engine.cursor == index
    assert await engine.next() is False
    for index in reversed(waits[:-1]):
        assert await engine.previous()
        assert engine.cursor == index
    assert await engine.previous() is False


async def test_next_without_wait_point_runs_to_end(make_engine):
    engine = make_engine()
    await engine.load([Message(id="m", role="assistant", content=(
        '<narrate>One</narrate><background src="a.png"/><enter id="kai"/>'
    ))])
    await engine.jump_to(0)
    assert await engine.next()
    assert engine.cursor == 2
    assert engine.state.background == "a.png"


async def test_advance_when_idle_moves_to_next_wait_point(make_engine, settle):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)
    assert engine.advance()
    first_wait = engine.queue.next_wait_point(-1)
    await settle(lambda: not engine.busy and engine.cursor == first_wait)


# ── Timing ───────────────────────────────────────────────


async def test_transition_durations(make_engine):
    engine = make_engine(fade_duration=0.5, enter_duration=0.25, exit_duration=0.75)
    await engine.load([Message(id="m", role="assistant", content=(
        '<background src="a.png"/><enter id="kai"/><exit id="kai"/><exit id="nobody"/>'
        '<pause for="2"/><narrate>Done</narrate>'
    ))])
    await engine.jump_to(-1)
    assert await engine.advance_to(5)
    assert engine.clock.now() == pytest.approx(0.5 + 0.5 + 0.25 + 0.75 + 2)


async def test_typewriter_timing(make_engine):
    engine = make_engine(typewriter_speed=100)
    await engine.load([Message(id="m", role="assistant", content="<narrate>Four</narrate>")])
    await engine.jump_to(-1)
    await engine.advance_to(0)
    assert engine.clock.now() == pytest.approx(0.4)


async def test_skip_finishes_reveal_but_not_later_commands(make_engine, settle):
    engine = make_engine(typewriter_speed=25)
    await engine.load([Message(id="m", role="assistant", content=(
        '<dialogue from="kai">A rather long line of text</dialogue><narrate>Rain.</narrate>'
    ))])
    await engine.jump_to(-1)
    task = engine.start(engine.advance_to(1))
    await settle(lambda: engine.suspended_at == "reveal")
    assert engine.skip()
    await settle(lambda: engine.waiting)
    textbox = engine.view().textbox
    assert textbox.content.plain_text() == "A rather long line of text"
    assert textbox.complete
    skipped_at = engine.clock.now()
    engine.advance()
    await task.join()
    assert engine.cursor == 1
    assert engine.clock.now() - skipped_at == pytest.approx(5 * 0.025)


async def test_auto_advance_resolves_after_delay(make_engine):
    engine = make_engine(auto_advance=True, auto_advance_delay=2.0)
    await engine.load([Message(id="m", role="assistant", content=(
        "<narrate>One</narrate><narrate>Two</narrate>"
    ))])
    await engine.jump_to(-1)
    assert await engine.advance_to(1)
    assert engine.clock.now() == pytest.approx(2.0)


async def test_auto_advance_never_answers_a_prompt(make_engine):
    engine = make_engine(auto_advance=True, auto_advance_delay=0.1)
    await engine.load([Message(id="m", role="assistant", content=(
        "<prompt><choice>Go</choice></prompt><narrate>After</narrate>"
    ))])
    await engine.jump_to(-1)
    task = engine.start(engine.advance_to(1))
    for _ in range(50):
        await asyncio.sleep(0)
    assert engine.waiting
    assert engine.suspended_at == "choice"
    task.cancel()
    await task.join()


# ── Guard, lock, cancel ──────────────────────────────────


async def test_second_operation_is_ignored_while_running(make_engine, settle):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)
    task = engine.start(engine.advance_to(len(engine.queue) - 1))
    await settle(lambda: engine.waiting)
    cursor = engine.cursor
    assert await engine.jump_to(0) is False
    assert await engine.retreat_to(-1) is False
    assert await engine.next() is False
    assert engine.cursor == cursor
    task.cancel()
    await task.join()


async def test_navigation_lock(make_engine):
    engine = await _loaded(make_engine)
    engine.lock_navigation()
    assert engine.view().streaming
    assert await engine.jump_to(0) is False
    assert await engine.previous() is False
    assert engine.advance() is False
    engine.unlock_navigation()
    assert await engine.jump_to(0)


async def test_cancel_keeps_committed_state(make_engine, settle):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)
    task = engine.start(engine.advance_to(len(engine.queue) - 1))
    await settle(lambda: engine.waiting)
    assert engine.cancel()
    assert await task.join() is True
    assert not engine.busy
    assert engine.state == _replay(engine, engine.cursor)
    assert await engine.jump_to(0)


async def test_cancel_stops_only_the_operation(make_engine, settle):
    engine = await _loaded(make_engine)
    await engine.jump_to(-1)

    async def caller():
        played = await engine.advance_to(len(engine.queue) - 1)
        return "after", played

    task = engine.start(caller())
    await settle(lambda: engine.waiting)
    assert engine.cancel()
    assert await task.join() == ("after", True)
    assert not engine.busy


async def test_cancel_when_idle(make_engine):
    engine = await _loaded(make_engine)
    assert engine.cancel() is False


# ── Choices ──────────────────────────────────────────────

PROMPT_SCENE = [Message(id="m", role="assistant", content=(
    "<prompt><info>Pick one</info><choice>Fight</choice><choice>Flee</choice></prompt>"
    "<narrate>Then</narrate>"
))]


async def test_select_choice_resolves_waiting_prompt(make_engine, settle):
    chosen: list[str] = []
    engine = make_engine(on_choice=chosen.append)
    await engine.load(PROMPT_SCENE)
    await engine.jump_to(-1)
    task = engine.start(engine.advance_to(1))
    await settle(lambda: engine.waiting)
    assert engine.view().choices == ["Fight", "Flee"]
    assert engine.select_choice("Dance") is False
    assert engine.select_choice("Flee")
    await task.join()
    assert chosen == ["Flee"]
    assert engine.cursor == 1


async def test_select_choice_on_idle_prompt(make_engine):
    chosen: list[str] = []
    engine = make_engine(on_choice=chosen.append)
    await engine.load(PROMPT_SCENE)
    await engine.jump_to(0)
    assert isinstance(engine.queue[0], Prompt)
    assert engine.select_choice("Fight")
    assert chosen == ["Fight"]
    assert engine.view().choices == []


async def test_select_choice_without_prompt(make_engine):
    engine = make_engine(on_choice=lambda text: None)
    await engine.load(PROMPT_SCENE)
    assert isinstance(engine.queue[engine.cursor], Narrate)
    assert engine.select_choice("Fight") is False


# ── Appending ────────────────────────────────────────────


async def test_append_message_compiles_from_tail(make_engine):
    engine = await _loaded(make_engine)
    indices = engine.append_message(
        Message(id="m3", role="assistant", content='<dialogue from="mira" expression="glad">Hi</dialogue>')
    )
    command = engine.queue[indices.start]
    assert isinstance(command, Dialogue)
    assert command.previous_expression == "shy"
    assert engine.view().can_go_forward


async def test_play_appended_from_behind_jumps_first(make_engine, drive):
    engine = await _loaded(make_engine)
    old_end = engine.cursor
    await engine.jump_to(0)
    indices = engine.append_message(
        Message(id="m3", role="assistant", content="<narrate>A</narrate><narrate>B</narrate>")
    )
    await drive(engine, engine.play_appended(indices))
    assert engine.cursor == indices.stop - 1
    assert indices.start == old_end + 1
    assert engine.state == _replay(engine, engine.cursor)


async def test_unknown_characters_render_with_placeholder(make_engine):
    engine = await _loaded(make_engine, placeholder_avatar="ph.svg")
    mira = engine.view().characters[0]
    assert mira.image_url == "ph.svg"
    assert not mira.known


async def test_degraded_message_is_reported(make_engine):
    engine = make_engine()
    await engine.load([Message(id="bad", role="assistant", content="<narrate>oops")])
    fallbacks = engine.view().fallbacks
    assert [f.message_id for f in fallbacks] == ["bad"]


async def test_close_releases_subscriptions(make_engine):
    engine = make_engine()
    engine.stage.subscribe(lambda view: None)
    engine.close()
    assert engine.stage.subscriber_count == 0

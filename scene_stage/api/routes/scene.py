"""Scene playback endpoints: view, navigation, user events, chat turns.

Navigation requests refused by the engine (playback already running, or a
stream outstanding) answer {"ok": false} rather than an error status.
Animated operations run in the background; pass ?wait=true to `next` to
await the animation before the response.
"""

from fastapi import APIRouter, HTTPException, Request

from scene_stage.session import SceneSession

from .models import ChatBody, ChoiceBody, JumpBody, NavigationResult

router = APIRouter()


async def _session(request: Request, slug: str) -> SceneSession:
    session = await request.app.state.sessions.get(slug)
    if session is None:
        raise HTTPException(404, "Conversation not found")
    return session


def _result(session: SceneSession, ok: bool) -> NavigationResult:
    return NavigationResult(ok=ok, scene=session.engine.view())


@router.get("/conversations/{slug}/scene")
async def get_scene(slug: str, request: Request):
    """Current stage: background, characters, textbox, choices, cursor."""
    session = await _session(request, slug)
    return session.engine.view()


@router.get("/conversations/{slug}/prompt")
async def get_prompt(slug: str, request: Request):
    """The system prompt the next turn would send."""
    session = await _session(request, slug)
    return {"prompt": session.render_prompt()}


@router.post("/conversations/{slug}/next")
async def next_wait_point(slug: str, request: Request, wait: bool = False):
    """Animate forward to the next wait point."""
    session = await _session(request, slug)
    engine = session.engine
    if not engine.can_navigate or not engine.can_go_forward:
        return _result(session, False)
    task = engine.start(engine.next(), name="next")
    if wait:
        await task.join()
    return _result(session, True)


@router.post("/conversations/{slug}/previous")
async def previous_wait_point(slug: str, request: Request):
    """Step back to the previous wait point (instant)."""
    session = await _session(request, slug)
    return _result(session, await session.engine.previous())


@router.post("/conversations/{slug}/jump")
async def jump(slug: str, body: JumpBody, request: Request):
    """Jump to a command index (instant, clamped)."""
    session = await _session(request, slug)
    return _result(session, await session.engine.jump_to(body.index))


@router.post("/conversations/{slug}/advance")
async def advance(slug: str, request: Request):
    """Resolve the current wait point, or move on when idle."""
    session = await _session(request, slug)
    return _result(session, session.engine.advance())


@router.post("/conversations/{slug}/skip")
async def skip(slug: str, request: Request):
    """Finish the current text reveal instantly."""
    session = await _session(request, slug)
    return _result(session, session.engine.skip())


@router.post("/conversations/{slug}/choice")
async def choice(slug: str, body: ChoiceBody, request: Request):
    """Pick a choice on the presented prompt; starts the next turn."""
    session = await _session(request, slug)
    return _result(session, session.engine.select_choice(body.text))


@router.post("/conversations/{slug}/cancel")
async def cancel(slug: str, request: Request):
    """Stop generation if a turn is streaming, else stop the running animation."""
    session = await _session(request, slug)
    if session.streaming.active:
        return _result(session, session.stop())
    return _result(session, session.engine.cancel())


@router.post("/conversations/{slug}/chat")
async def chat(slug: str, body: ChatBody, request: Request):
    """Send a player message and stream the reply onto the stage."""
    session = await _session(request, slug)
    task = session.start_turn(body.message)
    if task is None:
        return _result(session, False)
    if body.wait:
        await task.join()
    return _result(session, True)

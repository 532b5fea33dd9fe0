"""Health check and settings endpoints."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from scene_stage import storage
from scene_stage.config import PlaybackSettings, apply_update

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get app settings (playback timing, LLM connection, scene prompt)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict, request: Request):
    """Update app settings (partial merge). Open sessions pick them up at once."""
    try:
        PlaybackSettings.from_config(apply_update(storage.get_config(), body))
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise HTTPException(422, problems)
    config = storage.update_config(body)
    request.app.state.sessions.update_config(config)
    return config

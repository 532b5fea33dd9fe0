"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, conversations (CRUD, messages,
characters), and scene playback. Playback endpoints live under
/api/conversations/{slug}/ and return the current StageView.
"""

from fastapi import APIRouter

from .conversations import router as conversations_router
from .scene import router as scene_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(conversations_router)
router.include_router(scene_router)

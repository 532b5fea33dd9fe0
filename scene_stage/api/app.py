from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from scene_stage import storage
from scene_stage.config import data_dir_from_env
from scene_stage.llm import TokenStream

from .routes import router
from .sessions import SessionRegistry


def create_app(data_dir: Path | None = None, transport: TokenStream | None = None) -> FastAPI:
    """Build the app. `transport` replaces the configured LLM connection (demo, tests)."""
    resolved = data_dir or data_dir_from_env()
    storage.init_storage(resolved)
    sessions = SessionRegistry(transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        sessions.close_all()

    app = FastAPI(title="Scene Stage", lifespan=lifespan)
    app.state.sessions = sessions
    app.include_router(router, prefix="/api")
    return app

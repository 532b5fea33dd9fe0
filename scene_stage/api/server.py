"""Default app instance for uvicorn (uses DATA_DIR env var or default)."""

from .app import create_app

app = create_app()

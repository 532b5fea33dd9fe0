"""HTTP surface: FastAPI app factory, routes and the live session registry."""

from .app import create_app  # noqa: F401
from .sessions import SessionRegistry  # noqa: F401

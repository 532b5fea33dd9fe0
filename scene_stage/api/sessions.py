"""Live SceneSessions, one per open conversation."""

import logging
from typing import Any

from scene_stage import storage
from scene_stage.llm import TokenStream
from scene_stage.session import SceneSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, transport: TokenStream | None = None) -> None:
        self._transport = transport
        self._sessions: dict[str, SceneSession] = {}

    def __contains__(self, slug: str) -> bool:
        return slug in self._sessions

    async def get(self, slug: str) -> SceneSession | None:
        """Open (or reuse) the session for a stored conversation."""
        session = self._sessions.get(slug)
        if session is not None:
            return session
        if storage.get_conversation(slug) is None:
            return None
        session = SceneSession(slug, transport=self._transport)
        await session.open()
        self._sessions[slug] = session
        logger.debug("Opened session %s", slug)
        return session

    def update_config(self, config: dict[str, Any]) -> None:
        for session in self._sessions.values():
            session.update_config(config)

    def drop(self, slug: str) -> None:
        session = self._sessions.pop(slug, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for slug in list(self._sessions):
            self.drop(slug)

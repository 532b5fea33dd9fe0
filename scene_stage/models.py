"""Core domain models.

Scene state, stage records, rich content trees and the chat-layer types the
compiler reads. Pydantic is used for validation and serialisation at every
data boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Position = Literal["left", "center", "right"]
Role = Literal["user", "assistant", "system"]
NodeKind = Literal["root", "text", "ref", "em", "strong", "span", "pause"]

POSITIONS: tuple[str, ...] = ("left", "center", "right")


class Message(BaseModel):
    """A single chat message, owned by the history provider."""

    id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Character(BaseModel):
    """Character data served by the lookup collaborator."""

    id: str
    name: str
    avatar_url: str | None = None
    expressions: dict[str, str] = Field(default_factory=dict)  # name → image url
    gallery: dict[str, str] = Field(default_factory=dict)      # src → image url

    def image_for(self, expression: str | None) -> str | None:
        """Image for an expression (case-insensitive), else the avatar."""
        if expression:
            wanted = expression.lower()
            for name, url in self.expressions.items():
                if name.lower() == wanted:
                    return url
        return self.avatar_url


class CharacterOnStage(BaseModel):
    id: str
    expression: str | None = None
    position: Position = "center"

    @field_validator("position", mode="before")
    @classmethod
    def _normalise_position(cls, value: object) -> object:
        # Model output uses any casing; unknown positions land in the middle.
        if value is None:
            return "center"
        if isinstance(value, str):
            value = value.strip().lower()
            return value if value in POSITIONS else "center"
        return value


class SceneState(BaseModel):
    """Background reference plus the characters currently on stage.

    `on_stage` keeps insertion order, which is the order characters render in.
    """

    background: str = ""
    on_stage: dict[str, CharacterOnStage] = Field(default_factory=dict)

    def copy_state(self) -> SceneState:
        return self.model_copy(deep=True)


class ContentNode(BaseModel):
    """One node of an inline rich-content tree.

    Text lives only on `text` nodes; every other kind is a container whose
    meaning comes from `kind` and `attrs` (`ref` → `id`, `pause` → `for`).
    """

    kind: NodeKind = "root"
    text: str = ""
    attrs: dict[str, str] = Field(default_factory=dict)
    children: list[ContentNode] = Field(default_factory=list)

    @classmethod
    def of_text(cls, text: str) -> ContentNode:
        """A root holding a single text node."""
        return cls(children=[cls(kind="text", text=text)])

    def plain_text(self) -> str:
        if self.kind == "text":
            return self.text
        return "".join(child.plain_text() for child in self.children)

    def empty_clone(self) -> ContentNode:
        """Same kind and attributes, no text and no children."""
        return ContentNode(kind=self.kind, attrs=dict(self.attrs))

    @property
    def pause_seconds(self) -> float:
        try:
            return max(0.0, float(self.attrs.get("for", 0)))
        except ValueError:
            return 0.0

"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from scene_stage.models import Character
from scene_stage.playback import StageView


class CreateConversation(BaseModel):
    title: str
    persona_name: str = ""


class ChatBody(BaseModel):
    message: str
    wait: bool = False


class JumpBody(BaseModel):
    index: int


class ChoiceBody(BaseModel):
    text: str


class SaveCharacters(BaseModel):
    characters: list[Character]


class NavigationResult(BaseModel):
    ok: bool
    scene: StageView

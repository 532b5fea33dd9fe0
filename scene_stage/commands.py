"""Stage commands: a closed tagged union with symmetric apply/revert.

Every variant carries what it needs to apply itself and the snapshot taken
at compile time that lets it be reverted. `apply` and `revert` are pure:
they return a new SceneState and never touch the one passed in.

    >>> state = apply(Background(src="forest.png"), SceneState())
    >>> revert(Background(src="forest.png"), state) == SceneState()
    True
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from scene_stage.models import CharacterOnStage, ContentNode, SceneState


class _CommandBase(BaseModel):
    # Wait points suspend playback until the user acts.
    wait_point: ClassVar[bool] = False


class Background(_CommandBase):
    kind: Literal["background"] = "background"
    src: str
    previous_src: str = ""


class Enter(_CommandBase):
    kind: Literal["enter"] = "enter"
    character: CharacterOnStage
    previous: CharacterOnStage | None = None  # set when the id was already on stage


class Exit(_CommandBase):
    kind: Literal["exit"] = "exit"
    id: str
    previous: CharacterOnStage | None = None


class Dialogue(_CommandBase):
    wait_point: ClassVar[bool] = True

    kind: Literal["dialogue"] = "dialogue"
    speaker: str
    expression: str | None = None
    content: ContentNode = Field(default_factory=ContentNode)
    previous_expression: str | None = None
    user_action: bool = False


class Narrate(_CommandBase):
    wait_point: ClassVar[bool] = True

    kind: Literal["narrate"] = "narrate"
    content: ContentNode = Field(default_factory=ContentNode)
    marker: str | None = None  # "stopped" / "failed" for synthetic notices


class ShowImage(_CommandBase):
    wait_point: ClassVar[bool] = True

    kind: Literal["show_image"] = "show_image"
    src: str
    from_id: str | None = None
    caption: ContentNode | None = None


class Prompt(_CommandBase):
    wait_point: ClassVar[bool] = True

    kind: Literal["prompt"] = "prompt"
    info: str = ""
    choices: list[str] = Field(default_factory=list)


class Pause(_CommandBase):
    kind: Literal["pause"] = "pause"
    seconds: float = 0.0

    @field_validator("seconds")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        return max(0.0, value)


Command = Annotated[
    Union[Background, Enter, Exit, Dialogue, Narrate, ShowImage, Prompt, Pause],
    Field(discriminator="kind"),
]

command_list = TypeAdapter(list[Command])


def is_wait_point(command: Command) -> bool:
    return command.wait_point


def apply(command: Command, state: SceneState) -> SceneState:
    """Return the state after `command` has run."""
    new = state.copy_state()
    match command:
        case Background(src=src):
            new.background = src
        case Enter(character=character):
            new.on_stage[character.id] = character.model_copy()
        case Exit(id=char_id):
            new.on_stage.pop(char_id, None)
        case Dialogue(speaker=speaker, expression=expression):
            if expression and speaker in new.on_stage:
                new.on_stage[speaker].expression = expression
        case Narrate() | ShowImage() | Prompt() | Pause():
            pass
        case _:
            raise TypeError(f"Unknown command {command!r}")
    return new


def revert(command: Command, state: SceneState) -> SceneState:
    """Return the state from before `command` ran, using its snapshot."""
    new = state.copy_state()
    match command:
        case Background(previous_src=previous_src):
            new.background = previous_src
        case Enter(character=character, previous=previous):
            if previous is not None:
                new.on_stage[character.id] = previous.model_copy()
            else:
                new.on_stage.pop(character.id, None)
        case Exit(id=char_id, previous=previous):
            if previous is not None:
                new.on_stage[char_id] = previous.model_copy()
        case Dialogue(speaker=speaker, expression=expression, previous_expression=prior):
            if expression and speaker in new.on_stage:
                new.on_stage[speaker].expression = prior
        case Narrate() | ShowImage() | Prompt() | Pause():
            pass
        case _:
            raise TypeError(f"Unknown command {command!r}")
    return new

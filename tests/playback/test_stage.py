"""Tests for the Stage presentation model and its subscriptions."""

from scene_stage.models import Character, CharacterOnStage, ContentNode, SceneState
from scene_stage.playback import Stage


class Characters:
    def __init__(self, *characters: Character) -> None:
        self._by_id = {c.id: c for c in characters}

    def get_character(self, char_id):
        return self._by_id.get(char_id)


KAI = Character(id="kai", name="Kai", avatar_url="kai.png",
                expressions={"happy": "kai_happy.png"}, gallery={"map.png": "/img/kai_map.png"})


def _stage(**kwargs) -> Stage:
    return Stage(Characters(KAI), placeholder_avatar="ph.svg", **kwargs)


def test_render_resolves_characters():
    stage = _stage()
    stage.render(SceneState(background="forest.png", on_stage={
        "kai": CharacterOnStage(id="kai", expression="happy", position="left"),
        "ghost": CharacterOnStage(id="ghost"),
    }))
    view = stage.view()
    assert view.background == "forest.png"
    kai, ghost = view.characters
    assert (kai.name, kai.image_url, kai.position) == ("Kai", "kai_happy.png", "left")
    assert (ghost.name, ghost.image_url, ghost.known) == ("ghost", "ph.svg", False)


def test_default_background():
    stage = _stage(default_background="void.png")
    stage.render(SceneState())
    assert stage.view().background == "void.png"


def test_show_text_speaker_names():
    stage = _stage()
    stage.show_text("kai", ContentNode.of_text("Hi"), complete=True)
    assert stage.view().textbox.speaker == "Kai"
    stage.show_text(None, ContentNode.of_text("Rain"), complete=True)
    assert stage.view().textbox.speaker == "Narration"
    stage.show_text("user", ContentNode.of_text('"Hey"'), complete=True, user_action=True)
    assert stage.view().textbox.speaker == "You"


def test_references_resolved():
    stage = _stage()
    content = ContentNode(children=[
        ContentNode(kind="text", text="Ask "),
        ContentNode(kind="ref", attrs={"id": "kai"}),
    ])
    stage.show_text(None, content, complete=True)
    assert stage.view().textbox.references["kai"].name == "Kai"


def test_choices_replace_text():
    stage = _stage()
    stage.show_text("kai", ContentNode.of_text("Hi"), complete=True)
    stage.show_choices("Pick one", ["Fight", "Flee"])
    view = stage.view()
    assert view.choices == ["Fight", "Flee"]
    assert view.info == "Pick one"
    assert view.textbox.speaker == "Choice"


def test_show_image_uses_gallery():
    stage = _stage()
    stage.show_image("map.png", "kai")
    assert stage.view().image.url == "/img/kai_map.png"
    stage.show_image("other.png", None, ContentNode.of_text("Caption"))
    view = stage.view()
    assert view.image.url == "other.png"
    assert view.textbox.content.plain_text() == "Caption"


def test_update_text_without_textbox_is_ignored():
    stage = _stage()
    stage.update_text(ContentNode.of_text("x"))
    assert stage.view().textbox is None


def test_view_is_a_snapshot():
    stage = _stage()
    stage.show_choices("", ["a"])
    view = stage.view()
    view.choices.append("b")
    assert stage.view().choices == ["a"]


def test_subscribe_and_close():
    stage = _stage()
    seen = []
    subscription = stage.subscribe(seen.append)
    stage.set_waiting(True)
    assert seen[-1].waiting is True
    subscription.close()
    stage.set_waiting(False)
    assert len(seen) == 1
    assert stage.subscriber_count == 0


def test_subscription_context_manager():
    stage = _stage()
    seen = []
    with stage.subscribe(seen.append):
        stage.clear_dialogue()
    stage.clear_dialogue()
    assert len(seen) == 1


def test_failing_listener_does_not_stop_others(caplog):
    stage = _stage()
    seen = []

    def broken(view):
        raise RuntimeError("socket gone")

    stage.subscribe(broken)
    stage.subscribe(seen.append)
    stage.set_waiting(True)
    assert seen[-1].waiting is True
    assert "Stage listener failed" in caplog.text
    assert stage.subscriber_count == 2


def test_stage_close_releases_everything():
    stage = _stage()
    stage.subscribe(lambda view: None)
    stage.subscribe(lambda view: None)
    stage.close()
    assert stage.subscriber_count == 0

"""Create a demo conversation for development/testing."""

import shutil

from scene_stage import storage
from scene_stage.models import Character, Message

DEMO_TITLE = "The Lantern Ferry"

DEMO_CHARACTERS = [
    Character(
        id="mira",
        name="Mira",
        avatar_url="/assets/characters/mira/neutral.png",
        expressions={
            "neutral": "/assets/characters/mira/neutral.png",
            "happy": "/assets/characters/mira/happy.png",
            "worried": "/assets/characters/mira/worried.png",
        },
        gallery={"map.png": "/assets/characters/mira/map.png"},
    ),
    Character(
        id="oskar",
        name="Oskar",
        avatar_url="/assets/characters/oskar/neutral.png",
        expressions={
            "neutral": "/assets/characters/oskar/neutral.png",
            "grumpy": "/assets/characters/oskar/grumpy.png",
        },
    ),
]

# The second reply carries a typo (<dialouge>) the repairer fixes on load.
DEMO_MESSAGES = [
    Message(
        id="demo-1",
        role="assistant",
        content=(
            '<background src="river_dusk.jpg"/>\n'
            '<enter id="mira" expression="happy" position="left"/>\n'
            '<dialogue from="mira">Last ferry of the night! You are lucky, '
            "<em>very</em> lucky.</dialogue>\n"
            '<enter id="oskar" expression="grumpy" position="right"/>\n'
            '<dialogue from="oskar">Lucky is a strong word for a leaking boat.</dialogue>\n'
            "<prompt><info>Do you board?</info>"
            "<choice>Board the ferry</choice><choice>Ask about the leak</choice></prompt>"
        ),
    ),
    Message(id="demo-2", role="user", content="<choice>Ask about the leak</choice>"),
    Message(
        id="demo-3",
        role="assistant",
        content=(
            "```xml\n"
            "<narrate>Oskar jabs a thumb at a bucket.<pause for=\"0.5\"/> It is half full.</narrate>\n"
            '<dialouge from="mira" expression="worried">Ignore <ref id="oskar"/>. '
            "It only leaks when it rains.</dialouge>\n"
            '<show src="map.png" from="mira">The route across the river.</show>\n'
            "```"
        ),
    ),
]


def create_demo_data() -> str:
    """Wipe existing conversations and create a fresh demo. Returns its slug."""
    if storage.conversations_dir().exists():
        shutil.rmtree(storage.conversations_dir())
    storage.conversations_dir().mkdir(parents=True, exist_ok=True)

    conversation = storage.create_conversation(DEMO_TITLE, persona_name="Traveller")
    slug = conversation["slug"]
    storage.save_characters(slug, DEMO_CHARACTERS)
    storage.append_messages(slug, DEMO_MESSAGES)

    print(f"Created demo conversation '{slug}' with {len(DEMO_CHARACTERS)} characters "
          f"and {len(DEMO_MESSAGES)} messages.")
    return slug

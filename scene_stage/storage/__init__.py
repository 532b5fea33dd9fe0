"""File-based JSON storage for conversations, characters and settings.

Data layout:
  data/
    conversations/
      <slug>.json        Conversation metadata (title, persona name, timestamps)
      <slug>/            Child resources:
        messages.json    Chat message history (ordered, append-mostly)
        characters.json  Characters the scene markup may reference by id
    config.json          App settings (playback timing, LLM connection, prompt)

Slug rules: title → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates — llm_connection merged key-by-key,
scalars overwritten.

`ConversationHistory(slug)` bundles one conversation's messages and character
lookup behind the narrow interface the playback engine consumes.
"""

# Re-export all public symbols so `from scene_stage import storage` works.

from .core import (  # noqa: F401
    conversations_dir,
    data_dir,
    init_storage,
    slugify,
)

from .conversations import (  # noqa: F401
    create_conversation,
    delete_conversation,
    get_conversation,
    list_conversations,
    touch_conversation,
)

from .messages import (  # noqa: F401
    append_messages,
    delete_message,
    get_messages,
    new_message_id,
)

from .characters import (  # noqa: F401
    get_character,
    get_characters,
    save_characters,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)

from .history import ConversationHistory  # noqa: F401

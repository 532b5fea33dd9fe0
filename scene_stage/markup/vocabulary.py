"""Element and attribute names of the scene markup.

These are fixed constants, not user configurable. Repair compares against
TAG_NAMES; the compiler dispatches on the STAGE_TAGS / INLINE_TAGS split.
"""

# Containers whose children are walked as if they were top-level.
CONTAINER_TAGS: frozenset[str] = frozenset({"scene", "output"})

# One command per element.
STAGE_TAGS: frozenset[str] = frozenset({
    "background",
    "enter",
    "exit",
    "dialogue",
    "narrate",
    "prompt",
    "pause",
    "show",
    "image",
})

# Children of <prompt>.
PROMPT_TAGS: frozenset[str] = frozenset({"info", "choice"})

# Rich content inside dialogue / narrate / show.
INLINE_TAGS: dict[str, str] = {
    "ref": "ref",
    "em": "em",
    "i": "em",
    "strong": "strong",
    "b": "strong",
    "pause": "pause",
}

# Names the repairer corrects towards. Single-letter aliases are left out so
# they don't swallow short typos.
TAG_NAMES: tuple[str, ...] = tuple(sorted(
    CONTAINER_TAGS | STAGE_TAGS | PROMPT_TAGS | {"ref", "em", "strong"}
))

# Attributes
ATTR_SRC = "src"
ATTR_ID = "id"
ATTR_EXPRESSION = "expression"
ATTR_POSITION = "position"
ATTR_FROM = "from"
ATTR_FOR = "for"

SYNTHETIC_ROOT = "root"


def is_known(tag: str) -> bool:
    return tag.lower() in TAG_NAMES or tag.lower() in INLINE_TAGS

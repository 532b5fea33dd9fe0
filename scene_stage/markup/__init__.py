"""Scene markup → stage commands.

Runs in three steps for every assistant message:
  1. Sanitize — trim code fences and prose around the tags, wrap in a
     synthetic root and parse strictly.
  2. Repair — on parse failure, or when the tree holds unknown element
     names, rename unknown tags to the nearest vocabulary
     entry (edit distance ≤ 2, unambiguous), parse once more; if that fails
     too the message degrades to escaped plain text.
  3. Compile — one command per top-level element, snapshotting previous
     values from a shadow SceneState carried across the whole history.

Grammar (element names are fixed):
  <background src="..."/>
  <enter id="..." expression="..." position="left|center|right"/>
  <exit id="..."/>
  <dialogue from="..." expression="...">Text with <ref id="..."/> and <em>emphasis</em></dialogue>
  <narrate>Text</narrate>
  <prompt><info>Question</info><choice>A</choice><choice>B</choice></prompt>
  <pause for="1.5"/>
  <show src="..." from="...">Optional caption</show>
`<scene>` and `<output>` are transparent containers.

User messages compile too: `<choice>X</choice>` unwraps to X, quoted text is
the player's dialogue, anything else is narration.
"""

from .compiler import (  # noqa: F401
    CompiledMessage,
    PlainTextFallback,
    compile_history,
    compile_message,
    content_of,
)
from .repair import best_match, levenshtein, repair_tags  # noqa: F401
from .sanitizer import SanitizedMarkup, close_truncated, sanitize  # noqa: F401
from .vocabulary import TAG_NAMES  # noqa: F401

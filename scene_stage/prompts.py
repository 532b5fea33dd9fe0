"""Handlebars prompt rendering for the scene system prompt."""

from collections.abc import Callable
from typing import Any

import pybars

from scene_stage.models import Character, SceneState

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_join(this, items, separator=", "):
    """{{join array ", "}} — join plain values into one string."""
    return separator.join(str(item) for item in items or [])


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    count = int(count)
    if count <= 0:
        return result
    for item in list(items)[-count:]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
    "last": _helper_last,
}


DEFAULT_SCENE_PROMPT = """\
You are the director of a visual novel{{#if title}} called "{{{title}}}"{{/if}}.
Reply ONLY with scene markup. Every element goes on its own line:

<background src="file.jpg"/>
<enter id="character_id" expression="happy" position="left|center|right"/>
<exit id="character_id"/>
<dialogue from="character_id" expression="sad">Spoken text. Mention others with <ref id="character_id"/>, use <em>emphasis</em>.</dialogue>
<narrate>What happens, described.</narrate>
<show src="image.jpg" from="character_id">Optional caption</show>
<pause for="1.5"/>
<prompt><info>What does {{{persona.name}}} do?</info><choice>First option</choice><choice>Second option</choice></prompt>

Characters available:
{{#each chars.list}}
- {{id}}: {{{name}}}{{#if expressions}} (expressions: {{join expressions}}){{/if}}{{#if gallery}} (images: {{join gallery}}){{/if}}
{{else}}
- none yet
{{/each}}

Current stage:
- Background: {{#if stage.background}}{{stage.background}}{{else}}none{{/if}}
- On stage: {{#if stage.on_stage}}{{#each stage.on_stage}}{{id}} ({{position}}{{#if expression}}, {{expression}}{{/if}}) {{/each}}{{else}}nobody{{/if}}

The player is {{{persona.name}}} (id "{{persona.id}}"). Never write their lines or choose for them; end your reply with a prompt when a decision is due.
"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_scene_context(
    characters: list[Character],
    state: SceneState,
    persona_id: str = "user",
    persona_name: str = "",
    title: str = "",
) -> dict[str, Any]:
    """Assemble template variables for the scene prompt.

    Returns a dict suitable for passing to render_prompt(). Nested objects
    (chars, stage, persona) keep the Handlebars paths short.
    """
    chars_list = [
        {
            "id": c.id,
            "name": c.name,
            "expressions": sorted(c.expressions),
            "gallery": sorted(c.gallery),
        }
        for c in characters
    ]
    on_stage = [record.model_dump() for record in state.on_stage.values()]
    return {
        "title": title,
        "persona": {"id": persona_id, "name": persona_name or "the player"},
        "chars": {
            "list": chars_list,
            "summary": ", ".join(f"{c['name']} ({c['id']})" for c in chars_list),
        },
        "stage": {"background": state.background, "on_stage": on_stage},
    }


def scene_prompt(config: dict[str, Any], context: dict[str, Any]) -> str:
    """Render the configured scene prompt, or the built-in one if unset."""
    template = config.get("scene_prompt") or DEFAULT_SCENE_PROMPT
    return render_prompt(template, context)

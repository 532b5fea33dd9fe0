"""Markup sanitizing: strip wrapper noise, parse, repair once, degrade.

Model output is not guaranteed to be well-formed. `sanitize` never raises:
it returns either a parsed tree or a degraded result carrying the escaped
original text and the parser error, which callers render as plain text.
"""

import html
import logging
import re
from dataclasses import dataclass, field

from lxml import etree

from .repair import DEFAULT_MAX_DISTANCE, repair_tags
from .vocabulary import SYNTHETIC_ROOT, is_known

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^`{3,}[\w-]*[ \t]*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?`{3,}$")
_XML_DECL_RE = re.compile(r"^<\?xml[^>]*\?>\s*")
_TAG_RE = re.compile(r"<(/?)([A-Za-z_][\w.\-]*)[^<>]*?(/?)>")


@dataclass
class SanitizedMarkup:
    """Outcome of sanitizing one message.

    `markup` is the body that was (or would have been) parsed, without the
    synthetic root. `root` is None for empty input and for degraded results.
    """

    markup: str = ""
    root: etree._Element | None = None
    repairs: list[tuple[str, str]] = field(default_factory=list)
    error: str | None = None
    escaped: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    @property
    def empty(self) -> bool:
        return self.root is None and self.error is None


def strip_noise(text: str) -> str:
    """Trim fences, an XML declaration and prose around the tags."""
    body = (text or "").strip()
    body = _FENCE_OPEN_RE.sub("", body)
    body = _FENCE_CLOSE_RE.sub("", body).strip()
    body = _XML_DECL_RE.sub("", body)

    first = body.find("<")
    if first == -1:
        return ""
    body = body[first:]
    last = body.rfind(">")
    if last == -1:
        return ""
    return body[:last + 1]


def _parse(body: str) -> etree._Element:
    parser = etree.XMLParser(
        recover=False,
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
    )
    return etree.fromstring(f"<{SYNTHETIC_ROOT}>{body}</{SYNTHETIC_ROOT}>", parser)


def _unknown_tags(root: etree._Element) -> list[str]:
    return [
        el.tag for el in root.iter()
        if isinstance(el.tag, str) and el is not root and not is_known(el.tag)
    ]


def sanitize(text: str, max_distance: int = DEFAULT_MAX_DISTANCE) -> SanitizedMarkup:
    """Prepare one assistant message for compiling.

    Parses strictly. When that fails, or the tree holds element names outside
    the vocabulary, unknown tags are renamed to their closest vocabulary entry
    and the text is parsed once more. Input without any tags yields an empty
    result, which compiles to zero commands.
    """
    body = strip_noise(text)
    if not body:
        return SanitizedMarkup()

    parsed = None
    try:
        parsed = _parse(body)
    except etree.XMLSyntaxError as e:
        logger.debug("Scene markup failed to parse, attempting repair: %s", e)
    else:
        if not _unknown_tags(parsed):
            return SanitizedMarkup(markup=body, root=parsed)

    repaired, repairs = repair_tags(body, max_distance=max_distance)
    if parsed is not None and not repairs:
        return SanitizedMarkup(markup=body, root=parsed)
    try:
        root = _parse(repaired)
    except etree.XMLSyntaxError as e:
        logger.warning("Scene markup could not be repaired: %s", e)
        return SanitizedMarkup(
            markup=repaired,
            repairs=repairs,
            error=str(e),
            escaped=html.escape(text or ""),
        )

    logger.debug("Scene markup repaired: %s", repairs)
    return SanitizedMarkup(markup=repaired, root=root, repairs=repairs)


def close_truncated(text: str) -> str:
    """Make a stream cut off mid-element parseable again.

    Drops a tag that was still being written and appends closing tags for
    every element left open, innermost first.
    """
    body = (text or "").rstrip()
    last_open = body.rfind("<")
    if last_open > body.rfind(">"):
        body = body[:last_open].rstrip()

    stack: list[str] = []
    for match in _TAG_RE.finditer(body):
        closing, name, self_closing = match.groups()
        if self_closing:
            continue
        if not closing:
            stack.append(name)
        elif name in stack:
            while stack and stack.pop() != name:
                pass
    return body + "".join(f"</{name}>" for name in reversed(stack))

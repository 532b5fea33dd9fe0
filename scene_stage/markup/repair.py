"""Fuzzy tag repair: correct misspelt element names by edit distance."""

import logging
import re

from .vocabulary import TAG_NAMES, is_known

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 2

# Opening, closing and self-closing tags. Comments, doctypes and processing
# instructions never match because their name would start with ! or ?.
_TAG_RE = re.compile(r"(</?)([A-Za-z_][\w.\-]*)(?=[\s/>])")


def levenshtein(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute distance, case-insensitive."""
    a, b = a.lower(), b.lower()
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,               # delete
                current[j - 1] + 1,            # insert
                previous[j - 1] + (ca != cb),  # substitute
            ))
        previous = current
    return previous[-1]


def best_match(
    name: str,
    vocabulary: tuple[str, ...] = TAG_NAMES,
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> str | None:
    """Closest vocabulary entry within `max_distance`, or None.

    Ties between entries at the minimum distance are ambiguous and yield None.
    """
    best: str | None = None
    best_distance = max_distance + 1
    tied = False
    for candidate in vocabulary:
        distance = levenshtein(name, candidate)
        if distance < best_distance:
            best, best_distance, tied = candidate, distance, False
        elif distance == best_distance:
            tied = True
    if best is None or tied:
        return None
    return best


def repair_tags(
    markup: str, max_distance: int = DEFAULT_MAX_DISTANCE
) -> tuple[str, list[tuple[str, str]]]:
    """Rename unknown tags to their closest vocabulary entry.

    Returns the repaired text and the (old, new) renames that were applied,
    one entry per distinct name. Names with no unambiguous match within
    `max_distance` are left as they are.
    """
    renames: dict[str, str | None] = {}

    def _sub(match: re.Match) -> str:
        opening, name = match.group(1), match.group(2)
        if is_known(name):
            return match.group(0)
        if name not in renames:
            renames[name] = best_match(name, max_distance=max_distance)
            if renames[name]:
                logger.debug("Repairing tag %r -> %r", name, renames[name])
        replacement = renames[name]
        if replacement is None:
            return match.group(0)
        return f"{opening}{replacement}"

    repaired = _TAG_RE.sub(_sub, markup)
    applied = [(old, new) for old, new in renames.items() if new is not None]
    return repaired, applied

"""Shared assertions for prompt documents.

House-style checks reused across many eval cases, plus builders for simple
regex assertions (used directly by Python case units and by YAML case units).

Example:
    from plumb.assertions import common_structural, matches

    case = EvalCase(
        prompt_file="commands/debug.md",
        description="Debug command performs hypothesis-driven investigation",
        structural=[*common_structural(), matches("mentions-hypothesis", r"hypothes", case_sensitive=False)],
    )
"""

import re
from typing import Callable, Dict, List

from .eval_types import Assertion

PRIORITIES_HEADING = re.compile(r"^## Priorities", re.MULTILINE)

# Whole-word, case-sensitive: "important" in prose is fine, "IMPORTANT:" callouts are not.
EMPHASIS_MARKERS = re.compile(r"\b(IMPORTANT|CRITICAL)\b")
STACKING_WINDOW = 3
MAX_MARKERS_PER_WINDOW = 1

CASUAL_PHRASES = (
    "smart cookie",
    "handy dandy",
    "I believe in you",
    "ultrathink",
    "THE CARDINAL SIN",
)
CASUAL_LANGUAGE = re.compile(
    "(" + "|".join(re.escape(phrase) for phrase in CASUAL_PHRASES) + ")", re.IGNORECASE
)


def has_priorities_section(content: str) -> bool:
    return PRIORITIES_HEADING.search(content) is not None


def no_important_stacking(content: str) -> bool:
    """Fail if any 3-line window holds two or more IMPORTANT/CRITICAL markers.

    Windows start at every line index ``i`` with ``i < line_count - 3``, so a
    document shorter than 4 lines always passes.
    """
    lines = content.split("\n")
    for i in range(len(lines) - STACKING_WINDOW):
        window = "\n".join(lines[i : i + STACKING_WINDOW])
        if len(EMPHASIS_MARKERS.findall(window)) > MAX_MARKERS_PER_WINDOW:
            return False
    return True


def no_casual_language(content: str) -> bool:
    return CASUAL_LANGUAGE.search(content) is None


SHARED_ASSERTIONS: Dict[str, Callable[[str], bool]] = {
    "has-priorities-section": has_priorities_section,
    "no-important-stacking": no_important_stacking,
    "no-casual-language": no_casual_language,
}


def shared_assertion(name: str) -> Assertion:
    """Return a shared assertion by name.

    Raises:
        KeyError: If no shared assertion has that name.
    """
    try:
        test = SHARED_ASSERTIONS[name]
    except KeyError:
        raise KeyError(
            f"Unknown shared assertion {name!r}. Available: {', '.join(SHARED_ASSERTIONS)}"
        ) from None
    return Assertion(name=name, test=test)


def common_structural() -> List[Assertion]:
    """Structural assertions every rewritten prompt should pass."""
    return [shared_assertion(name) for name in SHARED_ASSERTIONS]


def _compile(pattern: str, case_sensitive: bool) -> "re.Pattern[str]":
    flags = re.MULTILINE if case_sensitive else re.MULTILINE | re.IGNORECASE
    return re.compile(pattern, flags)


def matches(name: str, pattern: str, *, case_sensitive: bool = True) -> Assertion:
    """Assertion that passes when ``pattern`` is found in the text."""
    regex = _compile(pattern, case_sensitive)
    return Assertion(name=name, test=lambda text: regex.search(text) is not None)


def excludes(name: str, pattern: str, *, case_sensitive: bool = True) -> Assertion:
    """Assertion that passes when ``pattern`` is NOT found in the text."""
    regex = _compile(pattern, case_sensitive)
    return Assertion(name=name, test=lambda text: regex.search(text) is None)

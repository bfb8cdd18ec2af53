"""End-of-session phrase matching.

Recognized text is checked here before it is handed to the dialogue
engine, so ending a session never depends on generated content.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

from xeno_agent.utils.config import DEFAULT_END_PHRASES

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'"})


def normalize_text(text: str) -> str:
    """Lowercase, unify apostrophes and collapse whitespace."""
    return " ".join(text.translate(_APOSTROPHES).lower().split())


@lru_cache(maxsize=32)
def _compile(phrases: tuple[str, ...]) -> re.Pattern[str] | None:
    cleaned = [normalize_text(p) for p in phrases if p.strip()]
    if not cleaned:
        return None
    # Longest first so "that's all" is preferred over a shorter overlap
    alternatives = "|".join(re.escape(p) for p in sorted(cleaned, key=len, reverse=True))
    return re.compile(rf"(?<![\w'])(?:{alternatives})(?![\w'])")


def match_end_phrase(text: str, phrases: Iterable[str] | None = None) -> str | None:
    """Find the end-of-session phrase contained in ``text``.

    Matching is case-insensitive and on word boundaries, so "bye" matches
    "ok bye!" but not "bypass".

    Args:
        text: Recognized utterance
        phrases: Phrases to look for (defaults to the built-in set)

    Returns:
        The matched phrase, or None
    """
    pattern = _compile(tuple(DEFAULT_END_PHRASES if phrases is None else phrases))
    if pattern is None:
        return None
    match = pattern.search(normalize_text(text))
    return match.group(0) if match else None


def is_end_of_session_phrase(text: str, phrases: Iterable[str] | None = None) -> bool:
    return match_end_phrase(text, phrases) is not None

"""Name normalization and edit-distance similarity for OCR-parsed bowler names."""

import re

from rapidfuzz.distance import Levenshtein

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def normalize_name(name: str) -> str:
    """Lowercase, trim, collapse whitespace and drop punctuation."""
    collapsed = _WHITESPACE.sub(" ", (name or "").lower().strip())
    return _NON_ALNUM.sub("", collapsed)


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def calculate_similarity(name1: str, name2: str) -> float:
    """Return a score in [0, 1] where 1 means the names are identical.

    The score is ``(max_len - distance) / max_len``; two empty names count as
    identical.
    """
    max_length = max(len(name1), len(name2))
    if max_length == 0:
        return 1.0
    distance = levenshtein_distance(name1.lower(), name2.lower())
    return (max_length - distance) / max_length

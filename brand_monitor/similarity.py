"""
Character-level similarity scoring for brand conflict detection.

Every detector decides "is this a conflict" through these functions. Scores
are edit-distance based and deterministic; they measure how close two marks
look once case and punctuation are ignored, not how they sound or what they
mean.
"""

import re
from typing import Dict, List

import Levenshtein

from brand_monitor.models import Severity

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_WHITESPACE = re.compile(r"\s+")

# Two-letter entries are matched before single letters.
PHONETIC_SWAPS: Dict[str, str] = {
    "ph": "f",
    "c": "k",
    "k": "c",
    "f": "ph",
    "z": "s",
    "s": "z",
    "i": "y",
    "y": "i",
}

HIGH_SIMILARITY = 0.9
MEDIUM_SIMILARITY = 0.7


def normalize(text: str) -> str:
    """Lower-case and drop everything outside ``[a-z0-9]``."""
    return _NON_ALNUM.sub("", (text or "").lower())


def similarity(mark1: str, mark2: str) -> float:
    """
    Calculate similarity between two marks from their Levenshtein distance.

    Args:
        mark1: First mark text
        mark2: Second mark text

    Returns:
        float: ``(max_len - distance) / max_len`` over the normalized forms,
        1.0 when both normalize to the empty string.
    """
    clean1 = normalize(mark1)
    clean2 = normalize(mark2)

    max_len = max(len(clean1), len(clean2))
    if max_len == 0:
        return 1.0

    distance = Levenshtein.distance(clean1, clean2)
    return (max_len - distance) / max_len


def severity_for(score: float) -> Severity:
    """Map a similarity score onto an alert severity."""
    if score > HIGH_SIMILARITY:
        return "high"
    if score > MEDIUM_SIMILARITY:
        return "medium"
    return "low"


def phonetic_variation(text: str) -> str:
    """Apply the phonetic swap table once, left to right."""
    out: List[str] = []
    i = 0
    while i < len(text):
        pair = text[i:i + 2]
        if pair in PHONETIC_SWAPS:
            out.append(PHONETIC_SWAPS[pair])
            i += 2
            continue
        out.append(PHONETIC_SWAPS.get(text[i], text[i]))
        i += 1
    return "".join(out)


def generate_variations(mark: str) -> List[str]:
    """
    Generate the spellings used to widen a registry similarity search.

    The result always starts with ``mark`` itself, contains no duplicates
    and is the same for the same input.

    Args:
        mark: The brand mark to vary.

    Returns:
        List of variations in a stable order.
    """
    clean = normalize(mark)
    candidates = [
        mark,
        clean,
        _WHITESPACE.sub("", mark),
        _WHITESPACE.sub("-", mark),
        mark.replace("-", " "),
        phonetic_variation(clean),
    ]

    variations: List[str] = []
    for candidate in candidates:
        if candidate and candidate not in variations:
            variations.append(candidate)
    return variations

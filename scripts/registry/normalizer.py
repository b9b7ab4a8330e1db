"""
District Name Normalization

Canonicalizes free-text district names into a comparable form. Each state
supplies its own vocabulary (see config.JURISDICTIONS); the pipeline itself
is the same everywhere:

    lowercase -> trim -> state vocabulary -> strip #.,() -> collapse spaces
"""

import re
from functools import lru_cache
from typing import List, Optional, Pattern, Tuple

from .config import Vocabulary, get_jurisdiction

PUNCTUATION_RE = re.compile(r"[#.,()]")
WHITESPACE_RE = re.compile(r"\s+")


@lru_cache(maxsize=64)
def _compile(vocabulary: Vocabulary) -> Tuple[Tuple[Pattern, str], ...]:
    return tuple((re.compile(pattern, re.IGNORECASE), repl) for pattern, repl in vocabulary)


def _single_pass(name: str, rules) -> str:
    result = name.lower().strip()
    for pattern, repl in rules:
        result = pattern.sub(repl, result)
    result = PUNCTUATION_RE.sub("", result)
    result = WHITESPACE_RE.sub(" ", result)
    return result.strip()


def normalize_with_vocabulary(name: Optional[str], vocabulary: Vocabulary) -> str:
    """Normalize a name against an explicit vocabulary table."""
    if not name:
        return ""

    rules = _compile(tuple(vocabulary))
    # Removing a phrase or punctuation can expose another phrase
    # ("school school district district"), so repeat until nothing changes.
    # Every rewrite shortens the name or replaces a "-", so this terminates.
    result = _single_pass(name, rules)
    while True:
        again = _single_pass(result, rules)
        if again == result:
            return result
        result = again


def normalize_district_name(name: Optional[str], state: Optional[str] = None) -> str:
    """
    Normalize a district name using the state's vocabulary.

    Args:
        name: Raw district name (roster or NCES)
        state: Two-letter postal code; None or an unlisted state uses the
            default vocabulary

    Returns:
        Normalized name; empty string for empty or blank input

    Examples:
        >>> normalize_district_name("Springfield Public Schools")
        'springfield'

        >>> normalize_district_name("Knox County Schools", "TN")
        'knox'
    """
    jurisdiction = get_jurisdiction(state)
    return normalize_with_vocabulary(name, jurisdiction.effective_vocabulary())


def normalize_names(names: List[str], state: Optional[str] = None) -> List[str]:
    """Normalize a list of names with one vocabulary lookup."""
    vocabulary = get_jurisdiction(state).effective_vocabulary()
    return [normalize_with_vocabulary(n, vocabulary) for n in names]

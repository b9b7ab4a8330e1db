"""
Jaro-Winkler similarity for normalized district names.

Implemented here rather than taken from RapidFuzz: RapidFuzz only applies
the Winkler prefix bonus when the Jaro score exceeds 0.7, while the
acceptance thresholds in config.py were calibrated on the unconditional
bonus below.
"""

PREFIX_SCALE = 0.1
MAX_PREFIX = 4


def jaro(s1: str, s2: str) -> float:
    """Plain Jaro similarity (0.0-1.0)."""
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0

    len1, len2 = len(s1), len(s2)
    window = max(0, max(len1, len2) // 2 - 1)

    s1_matched = [False] * len1
    s2_matched = [False] * len2
    matches = 0

    for i in range(len1):
        start = max(0, i - window)
        end = min(i + window + 1, len2)
        for j in range(start, end):
            if s2_matched[j] or s1[i] != s2[j]:
                continue
            s1_matched[i] = s2_matched[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    # Count matched characters that appear in a different order
    transpositions = 0
    k = 0
    for i in range(len1):
        if not s1_matched[i]:
            continue
        while not s2_matched[k]:
            k += 1
        if s1[i] != s2[k]:
            transpositions += 1
        k += 1

    return (
        matches / len1
        + matches / len2
        + (matches - transpositions / 2) / matches
    ) / 3


def common_prefix_length(s1: str, s2: str, limit: int = MAX_PREFIX) -> int:
    prefix = 0
    for a, b in zip(s1[:limit], s2[:limit]):
        if a != b:
            break
        prefix += 1
    return prefix


def jaro_winkler(s1: str, s2: str) -> float:
    """
    Jaro-Winkler similarity between two (already normalized) names.

    Either string empty scores 0.0; identical non-empty strings score 1.0.
    Symmetric in its arguments.
    """
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0

    # Greedy slot assignment can pick different positions depending on
    # which side scans first; fix the argument order so a/b == b/a.
    if s1 > s2:
        s1, s2 = s2, s1

    base = jaro(s1, s2)
    if base == 0.0:
        return 0.0
    prefix = common_prefix_length(s1, s2)
    return base + prefix * PREFIX_SCALE * (1 - base)

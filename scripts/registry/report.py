"""
Run summary output for registry loads.
"""

from typing import Any, Dict, List, Optional, Sequence

from rapidfuzz import fuzz, process

from .config import MATCH_METHODS
from .models import ReferenceEntity, RunStats
from .normalizer import normalize_district_name, normalize_names


def nearest_references(names: Sequence[str], candidates: Sequence[ReferenceEntity],
                       state: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
    """
    Closest reference district for each unmatched roster name.

    Uses RapidFuzz token_set_ratio on normalized names. This is a reviewer
    hint only; it never creates a match.
    """
    if not candidates or limit <= 0:
        return []

    choices = normalize_names([c.name for c in candidates], state)
    hints = []
    for name in list(names)[:limit]:
        query = normalize_district_name(name, state)
        if not query:
            continue
        best = process.extractOne(query, choices, scorer=fuzz.token_set_ratio)
        if best is None:
            continue
        _choice, score, idx = best
        hints.append({
            "state_name": name,
            "nearest_nces_id": candidates[idx].reference_id,
            "nearest_nces_name": candidates[idx].name,
            "token_set_ratio": round(score / 100.0, 3),
        })
    return hints


def print_summary(stats: RunStats):
    """Print the end-of-run report."""
    print(f"\n{'='*60}")
    print(f"RESULTS: {stats.state}")
    print(f"{'='*60}")

    if stats.aborted:
        print(f"  WARNING: {stats.state} already has {stats.existing_records:,} records")
        print(f"  Skipping to avoid duplicates. Run 'delete {stats.state}' first.")
        print()
        return

    print(f"  Import batch:      {stats.batch_id}")
    print(f"  Incoming records:  {stats.total_incoming:,}")
    print(f"  NCES candidates:   {stats.reference_count:,}")
    print(f"  Records loaded:    {stats.loaded:,}")
    print(f"  Records matched:   {stats.matched:,} ({stats.match_rate:.1f}%)")
    print(f"  Flagged for review: {stats.flagged_for_review:,}")
    print(f"  Errors:            {stats.errors:,}")
    print()
    print("  Match breakdown:")
    for method in MATCH_METHODS:
        print(f"    {method:20s} {stats.by_method.get(method, 0):>8,}")
    print(f"    {'unmatched':20s} {stats.unmatched_count:>8,}")

    if stats.unmatched_sample:
        print(f"\n  Sample unmatched (first {len(stats.unmatched_sample)}):")
        for name in stats.unmatched_sample:
            print(f"    - {name}")

    if stats.near_misses:
        print("\n  Nearest NCES names for unmatched:")
        for hint in stats.near_misses:
            print(f"    {hint['state_name']} -> {hint['nearest_nces_name']} "
                  f"({hint['nearest_nces_id']}, {hint['token_set_ratio']:.2f})")

    if stats.error_sample:
        print("\n  Errors:")
        for line in stats.error_sample:
            print(f"    ! {line}")

    print()
    if stats.coverage_before is not None:
        print(f"  {stats.state} coverage before: {stats.coverage_before}")
    if stats.coverage_after is not None:
        print(f"  {stats.state} coverage after:  {stats.coverage_after}")
    if stats.overall_coverage is not None:
        print(f"  OVERALL coverage:     {stats.overall_coverage}")
    print()

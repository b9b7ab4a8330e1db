"""
District Matcher

Picks the best NCES district for one roster name, scanning every reference
district of the same state:

  1. Identical normalized names -> exact_name, fixed score 0.95, stop scanning
  2. Jaro-Winkler >= 0.90       -> normalized_name
  3. Jaro-Winkler >= 0.80       -> fuzzy
  4. Otherwise                  -> no match (None)

Any accepted score below 0.85 is flagged for human review.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from .config import (
    ACCEPT_THRESHOLD,
    EXACT_MATCH_SCORE,
    METHOD_EXACT,
    METHOD_FUZZY,
    METHOD_NORMALIZED,
    NORMALIZED_THRESHOLD,
    REVIEW_THRESHOLD,
)
from .models import MatchDecision, ReferenceEntity
from .normalizer import normalize_district_name, normalize_names
from .similarity import jaro_winkler


def method_for_score(score: float) -> str:
    """Method tag for a non-exact accepted score."""
    return METHOD_NORMALIZED if score >= NORMALIZED_THRESHOLD else METHOD_FUZZY


def needs_review(score: float) -> bool:
    return score < REVIEW_THRESHOLD


class DistrictMatcher:
    """
    Matches roster names against one state's reference districts.

    Candidates are normalized once at construction and scanned in ascending
    reference-id order, so when two candidates tie on score the lower id wins.
    """

    def __init__(self, candidates: Iterable[ReferenceEntity], state: Optional[str] = None):
        self.state = state
        usable = [c for c in candidates if c.reference_id]
        usable.sort(key=lambda c: str(c.reference_id))
        normalized = normalize_names([c.name for c in usable], state)
        self._candidates: List[Tuple[ReferenceEntity, str]] = list(zip(usable, normalized))

    def __len__(self) -> int:
        return len(self._candidates)

    @property
    def candidates(self) -> List[ReferenceEntity]:
        return [c for c, _ in self._candidates]

    def match(self, name: str) -> Optional[MatchDecision]:
        """
        Match a single roster name.

        Args:
            name: District name as supplied by the state

        Returns:
            MatchDecision for the best candidate, or None when nothing clears
            the acceptance threshold
        """
        source = normalize_district_name(name, self.state)
        if not source:
            return None

        best: Optional[ReferenceEntity] = None
        best_target = ""
        best_score = 0.0

        for entity, target in self._candidates:
            if source == target:
                return MatchDecision(
                    entity=entity,
                    method=METHOD_EXACT,
                    score=EXACT_MATCH_SCORE,
                    needs_review=needs_review(EXACT_MATCH_SCORE),
                    normalized_source=source,
                    normalized_target=target,
                )

            score = jaro_winkler(source, target)
            if score > best_score and score >= ACCEPT_THRESHOLD:
                best, best_target, best_score = entity, target, score

        if best is None:
            return None

        return MatchDecision(
            entity=best,
            method=method_for_score(best_score),
            score=best_score,
            needs_review=needs_review(best_score),
            normalized_source=source,
            normalized_target=best_target,
        )


def match_district(name: str, candidates: Sequence[ReferenceEntity],
                   state: Optional[str] = None) -> Optional[MatchDecision]:
    """One-off match; builds a DistrictMatcher for the candidate list."""
    return DistrictMatcher(candidates, state).match(name)

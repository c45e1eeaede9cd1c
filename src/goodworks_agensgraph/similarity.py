from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .models import GoodWork

CATEGORY_WEIGHT = 3
TAG_WEIGHT = 2
SKILL_WEIGHT = 2
LOCATION_WEIGHT = 2
EFFORT_WEIGHT = 1

DEFAULT_SIMILAR_LIMIT = 10


@dataclass
class SimilarityCandidate:
    """Overlap counts between a reference GoodWork and one candidate."""

    work: GoodWork
    category_match: bool = False
    tag_overlap: int = 0
    skill_overlap: int = 0
    location_match: bool = False
    effort_match: bool = False

    @property
    def score(self) -> int:
        return (
            CATEGORY_WEIGHT * int(self.category_match)
            + TAG_WEIGHT * self.tag_overlap
            + SKILL_WEIGHT * self.skill_overlap
            + LOCATION_WEIGHT * int(self.location_match)
            + EFFORT_WEIGHT * int(self.effort_match)
        )


def _day_distance(reference: Optional[datetime], other: Optional[datetime]) -> float:
    if reference is None or other is None:
        return float("inf")
    return abs((other - reference).total_seconds()) / 86400


def rank_similar(
    reference: GoodWork,
    candidates: List[SimilarityCandidate],
    limit: int = DEFAULT_SIMILAR_LIMIT,
) -> List[GoodWork]:
    """Order candidates by score, then by closeness of start date.

    Candidates scoring zero and the reference itself are dropped. Candidates
    without a start time sort after dated ones with the same score.
    """
    scored = [
        candidate
        for candidate in candidates
        if candidate.score > 0 and candidate.work.id != reference.id
    ]
    scored.sort(
        key=lambda c: (-c.score, _day_distance(reference.start_time, c.work.start_time))
    )
    return [candidate.work for candidate in scored[:limit]]

"""
Score aggregation and ranking for candidate matches.
"""

from dataclasses import dataclass
from typing import List, Tuple

from .models import MatchResult

PICKUP_WEIGHT = 30
DROPOFF_WEIGHT = 30
TIME_WEIGHT = 25
DAY_WEIGHT = 15

PICKUP_REASON = "Pickup on route"
DROPOFF_REASON = "Dropoff on route"
TIME_REASON = "Time matches"
DAY_REASON = "Days match"

DEFAULT_MIN_MATCH_SCORE = 30

# Order matters: reasons are reported in this order
SCORE_WEIGHTS = (
    ("pickup_on_route", PICKUP_WEIGHT, PICKUP_REASON),
    ("dropoff_on_route", DROPOFF_WEIGHT, DROPOFF_REASON),
    ("time_match", TIME_WEIGHT, TIME_REASON),
    ("day_match", DAY_WEIGHT, DAY_REASON),
)

MAX_SCORE = sum(weight for _, weight, _ in SCORE_WEIGHTS)


@dataclass(frozen=True)
class MatchConditions:
    pickup_on_route: bool
    dropoff_on_route: bool
    time_match: bool
    day_match: bool


def score(conditions: MatchConditions) -> Tuple[int, List[str]]:
    """Sum the weights of the satisfied conditions and collect their reasons"""
    total = 0
    reasons = []
    for attr, weight, reason in SCORE_WEIGHTS:
        if getattr(conditions, attr):
            total += weight
            reasons.append(reason)
    return total, reasons


def is_included(match_score: int, min_match_score: int = DEFAULT_MIN_MATCH_SCORE) -> bool:
    return match_score >= min_match_score


def _ref_key(ref) -> Tuple[int, object]:
    # Numeric ids sort numerically and ahead of string ids
    if isinstance(ref, int) and not isinstance(ref, bool):
        return (0, ref)
    return (1, str(ref))


def rank(results: List[MatchResult], tie_break: str = "rating") -> List[MatchResult]:
    """Score descending, then owner rating descending, then candidate id ascending"""
    if tie_break == "id":
        return sorted(results, key=lambda r: (-r.match_score, _ref_key(r.candidate_ref)))
    return sorted(results, key=lambda r: (-r.match_score, -r.owner_rating, _ref_key(r.candidate_ref)))

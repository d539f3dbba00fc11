"""Score aggregation and ranking."""

import itertools

import pytest

from ridematch.modules.models import MatchResult
from ridematch.modules.scoring import (
    DAY_WEIGHT,
    DROPOFF_WEIGHT,
    MAX_SCORE,
    PICKUP_WEIGHT,
    TIME_WEIGHT,
    MatchConditions,
    is_included,
    rank,
    score,
)


def test_weights_sum_to_one_hundred():
    assert MAX_SCORE == 100


@pytest.mark.parametrize("flags", list(itertools.product([False, True], repeat=4)))
def test_score_is_exact_sum_of_satisfied_weights(flags):
    total, reasons = score(MatchConditions(*flags))
    expected = sum(w for w, on in zip((PICKUP_WEIGHT, DROPOFF_WEIGHT, TIME_WEIGHT, DAY_WEIGHT), flags) if on)

    assert total == expected
    assert 0 <= total <= 100
    assert len(reasons) == sum(flags)


def test_reasons_follow_weight_order():
    _, reasons = score(MatchConditions(True, True, True, True))
    assert reasons == ["Pickup on route", "Dropoff on route", "Time matches", "Days match"]


def test_inclusion_threshold():
    assert is_included(30)
    assert not is_included(25)
    assert not is_included(40, min_match_score=45)


def _result(ref, match_score, rating):
    return MatchResult(
        candidate_ref=ref,
        match_score=match_score,
        pickup_distance_km=None,
        dropoff_distance_km=None,
        is_valid_order=True,
        owner_rating=rating,
    )


def test_rank_by_score_then_rating_then_id():
    results = [
        _result(5, 70, 4.0),
        _result(2, 100, 4.5),
        _result(9, 100, 4.8),
        _result(1, 100, 4.5),
        _result(3, 85, 5.0),
    ]
    ranked = [r.candidate_ref for r in rank(results)]
    assert ranked == [9, 1, 2, 3, 5]


def test_rank_by_id_ignores_rating():
    results = [_result(2, 100, 4.9), _result(1, 100, 3.0)]
    assert [r.candidate_ref for r in rank(results, tie_break="id")] == [1, 2]


def test_rank_handles_mixed_id_types():
    results = [_result("b", 40, 4.0), _result(7, 40, 4.0), _result("a", 40, 4.0)]
    assert [r.candidate_ref for r in rank(results)] == [7, "a", "b"]

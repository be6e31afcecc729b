"""Tests for similarity and recency primitives."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from triage_memory.vector import (
    clamp,
    cosine_similarity,
    days_between,
    normalize_score,
    recency_score,
)


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_cosine_similarity_identical_and_opposite():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


@pytest.mark.parametrize(
    "vec1, vec2",
    [
        ([], []),
        ([1.0, 0.0], [1.0]),
        ([0.0, 0.0], [1.0, 1.0]),
        ([math.nan, 1.0], [1.0, 1.0]),
        ([math.inf, 1.0], [1.0, 1.0]),
        (None, [1.0]),
    ],
)
def test_cosine_similarity_malformed_inputs_are_neutral(vec1, vec2):
    assert cosine_similarity(vec1, vec2) == 0.0


def test_recency_is_zero_when_never_used():
    assert recency_score(None, NOW, 30.0) == 0.0


def test_recency_half_life_and_monotonicity():
    assert recency_score(NOW, NOW, 30.0) == pytest.approx(1.0)
    assert recency_score(NOW - timedelta(days=30), NOW, 30.0) == pytest.approx(0.5)

    recent = recency_score(NOW - timedelta(days=3), NOW, 30.0)
    older = recency_score(NOW - timedelta(days=40), NOW, 30.0)
    assert 0.0 < older < recent < 1.0


def test_recency_rejects_non_positive_half_life():
    with pytest.raises(ValueError):
        recency_score(NOW, NOW, 0.0)


def test_days_between_truncates_partial_days():
    assert days_between(NOW - timedelta(days=89, hours=23), NOW) == 89
    assert days_between(NOW - timedelta(days=90), NOW) == 90


def test_normalize_and_clamp():
    assert normalize_score(-10.0, -10.0, 10.0) == 0.0
    assert normalize_score(0.0, -10.0, 10.0) == 0.5
    assert normalize_score(10.0, -10.0, 10.0) == 1.0
    assert clamp(12.0, -10.0, 10.0) == 10.0
    assert clamp(-12.0, -10.0, 10.0) == -10.0

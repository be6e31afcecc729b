"""Vector and time-decay primitives shared by the memory engines.

Pure functions, no state. Malformed inputs degrade to neutral values instead of
raising, since embeddings may legitimately be absent on legacy records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import numpy as np

SECONDS_PER_DAY = 86400.0


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns a value in [-1.0, 1.0]. Empty vectors, vectors of different length,
    zero vectors and vectors containing non-finite values all yield 0.0.
    """
    if vec1 is None or vec2 is None:
        return 0.0
    if len(vec1) == 0 or len(vec1) != len(vec2):
        return 0.0

    v1 = np.asarray(vec1, dtype=np.float64)
    v2 = np.asarray(vec2, dtype=np.float64)
    if not (np.all(np.isfinite(v1)) and np.all(np.isfinite(v2))):
        return 0.0

    norm = float(np.linalg.norm(v1) * np.linalg.norm(v2))
    if norm == 0.0:
        return 0.0

    similarity = float(np.dot(v1, v2)) / norm
    # Rounding can push identical directions a hair past 1.0.
    return max(-1.0, min(1.0, similarity))


def fractional_days(earlier: datetime, now: datetime) -> float:
    """Days elapsed between two timestamps, with fractional part."""
    return (now - earlier).total_seconds() / SECONDS_PER_DAY


def days_between(earlier: datetime, now: datetime) -> int:
    """Whole days elapsed, truncated toward zero."""
    return int(fractional_days(earlier, now))


def recency_score(
    last_used_at: Optional[datetime], now: datetime, half_life_days: float
) -> float:
    """Exponential recency decay.

    - 0.0 if the memory was never used
    - 1.0 if used at ``now``
    - 0.5 after ``half_life_days``
    """
    if last_used_at is None:
        return 0.0
    if half_life_days <= 0:
        raise ValueError("half_life_days must be positive")
    return 0.5 ** (fractional_days(last_used_at, now) / half_life_days)


def normalize_score(score: float, score_min: float, score_max: float) -> float:
    """Map a quality score from [score_min, score_max] onto [0, 1]."""
    return (score - score_min) / (score_max - score_min)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


__all__ = [
    "cosine_similarity",
    "fractional_days",
    "days_between",
    "recency_score",
    "normalize_score",
    "clamp",
]

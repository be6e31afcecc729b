"""Tests for ScoringConfig validation and environment overrides."""

import pytest

from triage_memory.config import DEFAULT_SCORING_CONFIG, ScoringConfig
from triage_memory.errors import ScoringConfigError


def test_defaults_are_valid():
    config = DEFAULT_SCORING_CONFIG.validate()

    assert config.ema_alpha == 0.3
    assert (config.helpful_delta, config.harmful_delta) == (2.0, -3.0)
    assert (config.search_multiplier, config.search_max_candidates) == (5, 100)
    assert (
        config.rank_similarity_weight,
        config.rank_quality_weight,
        config.rank_recency_weight,
    ) == (0.5, 0.3, 0.2)
    assert (config.prune_harmful_days, config.prune_moderate_days) == (90, 180)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"ema_alpha": 1.5}, "ema_alpha"),
        ({"ema_alpha": -0.1}, "ema_alpha"),
        ({"score_min": 10.0, "score_max": -10.0}, "score_min"),
        ({"search_multiplier": 0}, "search_multiplier"),
        ({"search_max_candidates": -1}, "search_max_candidates"),
        ({"rank_quality_weight": -0.1}, "rank_quality_weight"),
        ({"rank_similarity_weight": 0.9}, "rank weights"),
        ({"recency_half_life_days": 0.0}, "recency_half_life_days"),
        ({"prune_critical_score": -3.0, "prune_harmful_score": -5.0}, "prune thresholds"),
        ({"prune_harmful_days": 200, "prune_moderate_days": 100}, "prune days"),
        ({"helpful_delta": 12.0}, "helpful_delta"),
    ],
)
def test_invalid_configs_rejected(overrides, field):
    with pytest.raises(ScoringConfigError) as excinfo:
        ScoringConfig(**overrides).validate()

    assert excinfo.value.field == field


def test_with_overrides_returns_validated_copy():
    custom = DEFAULT_SCORING_CONFIG.with_overrides(ema_alpha=0.6)

    assert custom.ema_alpha == 0.6
    assert DEFAULT_SCORING_CONFIG.ema_alpha == 0.3

    with pytest.raises(ScoringConfigError):
        DEFAULT_SCORING_CONFIG.with_overrides(ema_alpha=2.0)


def test_from_env_reads_prefixed_variables(monkeypatch):
    monkeypatch.setenv("MEMORY_EMA_ALPHA", "0.5")
    monkeypatch.setenv("MEMORY_PRUNE_HARMFUL_DAYS", "60")

    config = ScoringConfig.from_env()

    assert config.ema_alpha == 0.5
    assert config.prune_harmful_days == 60
    assert isinstance(config.prune_harmful_days, int)
    assert config.helpful_delta == 2.0


def test_from_env_rejects_unparseable_values(monkeypatch):
    monkeypatch.setenv("TEST_EMA_ALPHA", "fast")

    with pytest.raises(ScoringConfigError):
        ScoringConfig.from_env(prefix="TEST_")

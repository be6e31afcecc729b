"""
Triage Memory Configuration

Loads runtime configuration from environment variables with sensible defaults,
and defines ScoringConfig, the validated set of numeric policy knobs shared by
the selection, scoring and pruning engines.
"""

import os
from dataclasses import dataclass, fields, replace
from dotenv import load_dotenv

from .errors import ScoringConfigError

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration (grader + reflection)
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-5-nano")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM Configuration (Ollama). Also used for embeddings.
    LOCAL_LLM_BASE_URL: str | None = os.getenv("LOCAL_LLM_BASE_URL")

    # Embeddings
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))

    # Retrieval / feedback
    MEMORY_SEARCH_LIMIT: int = int(os.getenv("MEMORY_SEARCH_LIMIT", "5"))
    FEEDBACK_MAX_CONCURRENCY: int = int(os.getenv("FEEDBACK_MAX_CONCURRENCY", "4"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER == "ollama" and not cls.LOCAL_LLM_BASE_URL:
            raise ValueError(
                "LOCAL_LLM_BASE_URL is required when using the 'ollama' provider. "
                "Set it to your Ollama endpoint (e.g., http://localhost:11434)"
            )

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For local grading, set LLM_PROVIDER=ollama and LOCAL_LLM_BASE_URL."
            )

        if cls.EMBEDDING_DIMENSION <= 0:
            raise ValueError("EMBEDDING_DIMENSION must be a positive integer")

        if cls.FEEDBACK_MAX_CONCURRENCY <= 0:
            raise ValueError("FEEDBACK_MAX_CONCURRENCY must be a positive integer")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Triage Memory Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Embedding Model: {cls.EMBEDDING_MODEL} ({cls.EMBEDDING_DIMENSION}d)",
            f"  Search Limit: {cls.MEMORY_SEARCH_LIMIT}",
            f"  Feedback Concurrency: {cls.FEEDBACK_MAX_CONCURRENCY}",
            f"  Log Level: {cls.LOG_LEVEL}",
        ]
        return "\n".join(lines)


@dataclass(frozen=True)
class ScoringConfig:
    """Numeric policy for memory selection, scoring and pruning.

    One instance is handed to each engine at construction time. Defaults match
    the production profile; ``validate()`` rejects combinations that would let
    a score escape its range or make the pruning tiers overlap backwards.
    """

    # EMA update
    ema_alpha: float = 0.3
    score_min: float = -10.0
    score_max: float = 10.0
    helpful_delta: float = 2.0
    harmful_delta: float = -3.0

    # Candidate retrieval
    search_multiplier: int = 5
    search_max_candidates: int = 100

    # Selection
    filter_min_quality: float = -5.0
    rank_similarity_weight: float = 0.5
    rank_quality_weight: float = 0.3
    rank_recency_weight: float = 0.2
    recency_half_life_days: float = 30.0

    # Pruning
    prune_critical_score: float = -8.0
    prune_harmful_score: float = -5.0
    prune_harmful_days: int = 90
    prune_moderate_score: float = -3.0
    prune_moderate_days: int = 180

    def validate(self) -> "ScoringConfig":
        """Raise ScoringConfigError for the first invalid field, else return self."""

        if not 0.0 <= self.ema_alpha <= 1.0:
            raise ScoringConfigError("ema_alpha", f"must be within [0, 1], got {self.ema_alpha}")
        if self.score_min >= self.score_max:
            raise ScoringConfigError(
                "score_min", f"must be below score_max ({self.score_min} >= {self.score_max})"
            )
        for name in ("helpful_delta", "harmful_delta", "filter_min_quality"):
            value = getattr(self, name)
            if not self.score_min <= value <= self.score_max:
                raise ScoringConfigError(name, f"must lie within the score range, got {value}")
        if self.search_multiplier <= 0:
            raise ScoringConfigError("search_multiplier", "must be positive")
        if self.search_max_candidates <= 0:
            raise ScoringConfigError("search_max_candidates", "must be positive")

        weights = (
            ("rank_similarity_weight", self.rank_similarity_weight),
            ("rank_quality_weight", self.rank_quality_weight),
            ("rank_recency_weight", self.rank_recency_weight),
        )
        for name, value in weights:
            if value < 0.0:
                raise ScoringConfigError(name, f"must be non-negative, got {value}")
        total = sum(value for _, value in weights)
        # Small tolerance so 0.5 + 0.3 + 0.2 style sums pass.
        if total > 1.0 + 1e-9:
            raise ScoringConfigError("rank weights", f"must sum to at most 1.0, got {total}")

        if self.recency_half_life_days <= 0.0:
            raise ScoringConfigError("recency_half_life_days", "must be positive")

        if not (
            self.prune_critical_score <= self.prune_harmful_score <= self.prune_moderate_score
        ):
            raise ScoringConfigError(
                "prune thresholds",
                "must be ordered critical <= harmful <= moderate",
            )
        if self.prune_harmful_days < 0 or self.prune_moderate_days < 0:
            raise ScoringConfigError("prune days", "must be non-negative")
        if self.prune_harmful_days > self.prune_moderate_days:
            raise ScoringConfigError(
                "prune days", "prune_harmful_days must not exceed prune_moderate_days"
            )
        return self

    def with_overrides(self, **overrides: float) -> "ScoringConfig":
        """Return a validated copy with selected fields replaced."""
        return replace(self, **overrides).validate()

    @classmethod
    def from_env(cls, prefix: str = "MEMORY_") -> "ScoringConfig":
        """Build a config from ``{prefix}{FIELD_NAME}`` environment variables.

        Unset variables keep their defaults. Example: ``MEMORY_EMA_ALPHA=0.5``.
        """

        overrides: dict[str, float | int] = {}
        for field_info in fields(cls):
            raw = os.getenv(f"{prefix}{field_info.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            caster = int if field_info.type in (int, "int") else float
            try:
                overrides[field_info.name] = caster(raw)
            except ValueError as exc:
                raise ScoringConfigError(
                    field_info.name, f"could not parse {raw!r} from environment"
                ) from exc
        return cls(**overrides).validate()


DEFAULT_SCORING_CONFIG = ScoringConfig()

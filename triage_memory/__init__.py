"""
Triage Memory - scored long-term memory for LLM sub-agents.

Selects past task memories for a prompt, grades them after use, folds the
grades into a bounded quality score and prunes what keeps misleading agents.

Storage, embeddings and LLM access are injected by the caller.
"""

__version__ = "0.1.0"

# Main service
from .service import MemoryService

# Configuration
from .config import Config, ScoringConfig, DEFAULT_SCORING_CONFIG

# Engines
from .selection import (
    SelectionAlgorithm,
    RankedMemory,
    rank_memories,
    build_selection_algorithm,
    default_selection_algorithm,
)
from .scoring import (
    ScoringAlgorithm,
    GradedScoringAlgorithm,
    ema_update,
    build_reflection_scoring,
    build_graded_scoring,
    AGGRESSIVE_SCORING_CONFIG,
    default_scoring_algorithm,
    aggressive_scoring_algorithm,
    default_graded_scoring,
)
from .pruning import (
    PruneTier,
    PruningAlgorithm,
    classify_for_pruning,
    build_pruning_algorithm,
    default_pruning_algorithm,
)

# Feedback and reflection
from .feedback import FeedbackCollector, FeedbackGrader, LLMFeedbackGrader
from .reflection import (
    ReflectionGenerator,
    LLMReflectionGenerator,
    format_execution_history,
)
from .prompts import PromptTemplate, PromptLibrary, DEFAULT_PROMPTS

# Storage and embeddings
from .repository import MemoryRepository, InMemoryRepository, JsonlRepository
from .embedding import Embedder, OllamaEmbedder

# Core schemas
from .schemas import (
    AgentMemory,
    ScoreUpdate,
    MemoryFeedback,
    Reflection,
    ExecutionMessage,
)

# Errors
from .errors import (
    ScoringConfigError,
    MemoryPersistenceError,
    EmbeddingError,
    LocalLLMError,
)

__all__ = [
    # Main class
    "MemoryService",
    # Configuration
    "Config",
    "ScoringConfig",
    "DEFAULT_SCORING_CONFIG",
    # Engines
    "SelectionAlgorithm",
    "RankedMemory",
    "rank_memories",
    "build_selection_algorithm",
    "default_selection_algorithm",
    "ScoringAlgorithm",
    "GradedScoringAlgorithm",
    "ema_update",
    "build_reflection_scoring",
    "build_graded_scoring",
    "AGGRESSIVE_SCORING_CONFIG",
    "default_scoring_algorithm",
    "aggressive_scoring_algorithm",
    "default_graded_scoring",
    "PruneTier",
    "PruningAlgorithm",
    "classify_for_pruning",
    "build_pruning_algorithm",
    "default_pruning_algorithm",
    # Feedback and reflection
    "FeedbackCollector",
    "FeedbackGrader",
    "LLMFeedbackGrader",
    "ReflectionGenerator",
    "LLMReflectionGenerator",
    "format_execution_history",
    "PromptTemplate",
    "PromptLibrary",
    "DEFAULT_PROMPTS",
    # Storage and embeddings
    "MemoryRepository",
    "InMemoryRepository",
    "JsonlRepository",
    "Embedder",
    "OllamaEmbedder",
    # Schemas
    "AgentMemory",
    "ScoreUpdate",
    "MemoryFeedback",
    "Reflection",
    "ExecutionMessage",
    # Errors
    "ScoringConfigError",
    "MemoryPersistenceError",
    "EmbeddingError",
    "LocalLLMError",
]

"""
Action Knowledge Base: Map Natural-Language Test Steps to Page-Object Methods

A four-layer semantic store (atomic actions, composite actions, user
terminology, learned patterns) with confidence-ranked retrieval, synonym
expansion, composite resolution and a repository mining pipeline.
"""

__version__ = "0.1.0"

# Core components
from action_kb.core.config import KnowledgeBaseConfig, MatchThresholds, MiningConfig
from action_kb.core.embeddings import EmbeddingConfig, FallbackEmbeddingProvider
from action_kb.core.errors import KnowledgeBaseError, NotFoundError
from action_kb.core.observability import ObservabilityConfig, ObservabilityManager

# Knowledge base
from action_kb.knowledge.service import ActionKnowledgeBase

# Models
from action_kb.models import (
    ActionReference,
    AtomicAction,
    Brand,
    CompositeAction,
    CompositeStep,
    DecompositionStep,
    LearnedPattern,
    LearningContext,
    Platform,
    UserTerm,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "KnowledgeBaseConfig",
    "MatchThresholds",
    "MiningConfig",
    "EmbeddingConfig",
    "FallbackEmbeddingProvider",
    "KnowledgeBaseError",
    "NotFoundError",
    "ObservabilityConfig",
    "ObservabilityManager",
    # Knowledge base
    "ActionKnowledgeBase",
    # Models
    "ActionReference",
    "AtomicAction",
    "Brand",
    "CompositeAction",
    "CompositeStep",
    "DecompositionStep",
    "LearnedPattern",
    "LearningContext",
    "Platform",
    "UserTerm",
]

"""Core infrastructure: configuration, errors, embeddings and observability."""

from action_kb.core.config import KnowledgeBaseConfig, MatchThresholds, MiningConfig
from action_kb.core.embeddings import (
    BaseEmbeddingProvider,
    EmbeddingConfig,
    FallbackEmbeddingProvider,
    OpenAICompatibleEmbeddingProvider,
    create_embedding_provider,
    distance_to_confidence,
    fallback_embedding,
)
from action_kb.core.errors import (
    DuplicateIdError,
    EmbeddingUnavailableError,
    InvalidIdError,
    KnowledgeBaseError,
    NotFoundError,
    StoreUnavailableError,
)
from action_kb.core.observability import ObservabilityConfig, ObservabilityManager

__all__ = [
    "KnowledgeBaseConfig",
    "MatchThresholds",
    "MiningConfig",
    "BaseEmbeddingProvider",
    "EmbeddingConfig",
    "FallbackEmbeddingProvider",
    "OpenAICompatibleEmbeddingProvider",
    "create_embedding_provider",
    "distance_to_confidence",
    "fallback_embedding",
    "DuplicateIdError",
    "EmbeddingUnavailableError",
    "InvalidIdError",
    "KnowledgeBaseError",
    "NotFoundError",
    "StoreUnavailableError",
    "ObservabilityConfig",
    "ObservabilityManager",
]

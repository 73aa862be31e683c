"""Knowledge-base entities and result types."""

from action_kb.models.actions import (
    ActionReference,
    AtomicAction,
    Brand,
    CompositeAction,
    CompositeStep,
    DecompositionStep,
    KnowledgeEntity,
    LearnedPattern,
    LearningContext,
    Platform,
    UserTerm,
)
from action_kb.models.results import (
    AddResult,
    AtomicActionLookup,
    AtomicActionMatch,
    CompositeActionLookup,
    CompositeActionMatch,
    CompositeExpansion,
    ExpandedStep,
    KnowledgeBaseStats,
    Layer,
    LearnedItem,
    LearnedPatternLookup,
    LearnedPatternMatch,
    LearnedPatternStats,
    LearningError,
    LearningResult,
    MiningError,
    MiningStats,
    TermTranslation,
    TranslationSource,
    UserTermMatch,
)

__all__ = [
    "ActionReference",
    "AtomicAction",
    "Brand",
    "CompositeAction",
    "CompositeStep",
    "DecompositionStep",
    "KnowledgeEntity",
    "LearnedPattern",
    "LearningContext",
    "Platform",
    "UserTerm",
    "AddResult",
    "AtomicActionLookup",
    "AtomicActionMatch",
    "CompositeActionLookup",
    "CompositeActionMatch",
    "CompositeExpansion",
    "ExpandedStep",
    "KnowledgeBaseStats",
    "Layer",
    "LearnedItem",
    "LearnedPatternLookup",
    "LearnedPatternMatch",
    "LearnedPatternStats",
    "LearningError",
    "LearningResult",
    "MiningError",
    "MiningStats",
    "TermTranslation",
    "TranslationSource",
    "UserTermMatch",
]

"""
Result types returned by knowledge-base lookups and mutations.

Every lookup keeps two signals apart: ``found`` is the thresholded
acceptance decision, ``best_match`` is the raw best candidate and is present
whenever any candidate exists.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from action_kb.models.actions import AtomicAction, CompositeAction, LearnedPattern, UserTerm


class Layer(str, Enum):
    """Knowledge-base layers, valued by collection name."""
    ATOMIC = "atomic_actions"
    COMPOSITE = "composite_actions"
    TERMINOLOGY = "user_terminology"
    PATTERNS = "learned_patterns"


class TranslationSource(str, Enum):
    """Where a term translation came from."""
    LEARNED_TERMINOLOGY = "learned_terminology"
    ATOMIC_ACTION_MATCH = "atomic_action_match"


# Matches

class AtomicActionMatch(BaseModel):
    action: AtomicAction
    distance: float = Field(..., ge=0.0, le=2.0)
    confidence: float = Field(..., ge=0.0, le=1.0)


class CompositeActionMatch(BaseModel):
    composite: CompositeAction
    distance: float = Field(..., ge=0.0, le=2.0)
    confidence: float = Field(..., ge=0.0, le=1.0)


class UserTermMatch(BaseModel):
    term: UserTerm
    distance: float = Field(..., ge=0.0, le=2.0)
    confidence: float = Field(..., ge=0.0, le=1.0)


class LearnedPatternMatch(BaseModel):
    pattern: LearnedPattern
    distance: float = Field(..., ge=0.0, le=2.0)
    confidence: float = Field(..., ge=0.0, le=1.0)


# Lookups

class AtomicActionLookup(BaseModel):
    """Outcome of an atomic action search."""

    query: str
    found: bool = False
    best_match: Optional[AtomicActionMatch] = None
    candidates: List[AtomicActionMatch] = Field(default_factory=list)
    error: Optional[str] = None


class CompositeActionLookup(BaseModel):
    """Outcome of a composite action search."""

    query: str
    found: bool = False
    best_match: Optional[CompositeActionMatch] = None
    candidates: List[CompositeActionMatch] = Field(default_factory=list)
    error: Optional[str] = None


class TermTranslation(BaseModel):
    """Translation of user wording into action phrases."""

    input: str
    found: bool = False
    source: Optional[TranslationSource] = None
    expands_to: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    term: Optional[UserTerm] = None
    atomic_match: Optional[AtomicActionMatch] = None
    best_term_candidate: Optional[UserTermMatch] = Field(
        default=None,
        description="Closest terminology entry, even when rejected"
    )
    suggestion: Optional[str] = None
    error: Optional[str] = None


class LearnedPatternLookup(BaseModel):
    """Outcome of a learned pattern search."""

    phrase: str
    found: bool = False
    best_match: Optional[LearnedPatternMatch] = None
    matches: List[LearnedPatternMatch] = Field(
        default_factory=list,
        description="Candidates above the acceptance threshold"
    )
    candidates: List[LearnedPatternMatch] = Field(default_factory=list)
    error: Optional[str] = None


# Composite expansion

class ExpandedStep(BaseModel):
    """A composite step after resolution; ``action`` is None when unmapped."""

    phrase: str
    order: int = 0
    conditional: bool = False
    parameters: Dict[str, Any] = Field(default_factory=dict)
    unmapped: bool = False
    action: Optional[AtomicAction] = None
    confidence: Optional[float] = None


class CompositeExpansion(BaseModel):
    composite_id: str
    action_name: str
    description: str = ""
    prerequisites: List[str] = Field(default_factory=list)
    steps: List[ExpandedStep] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def has_unmapped_steps(self) -> bool:
        return any(step.unmapped for step in self.steps)


# Mutations and batch operations

class AddResult(BaseModel):
    """Outcome of an add call; duplicate ids never surface as errors."""

    id: str
    created: bool = False
    updated: bool = False
    existed: bool = False


class MiningError(BaseModel):
    path: str
    error: str


class MiningStats(BaseModel):
    """Statistics accumulated by one repository mining pass."""

    files_scanned: int = 0
    methods_found: int = 0
    actions_created: int = 0
    errors: List[MiningError] = Field(default_factory=list)


class LearningError(BaseModel):
    action: str
    error: str


class LearnedItem(BaseModel):
    id: str
    action: str
    target: str


class LearningResult(BaseModel):
    learned: List[LearnedItem] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    errors: List[LearningError] = Field(default_factory=list)


class KnowledgeBaseStats(BaseModel):
    atomic_actions: int = 0
    composite_actions: int = 0
    user_terminology: int = 0
    learned_patterns: int = 0

    @computed_field  # type: ignore[misc]
    @property
    def total(self) -> int:
        return (
            self.atomic_actions
            + self.composite_actions
            + self.user_terminology
            + self.learned_patterns
        )


class LearnedPatternStats(BaseModel):
    total_patterns: int = 0
    total_usage: int = 0
    by_action: Dict[str, int] = Field(default_factory=dict)
    by_screen: Dict[str, int] = Field(default_factory=dict)


__all__ = [
    "Layer",
    "TranslationSource",
    "AtomicActionMatch",
    "CompositeActionMatch",
    "UserTermMatch",
    "LearnedPatternMatch",
    "AtomicActionLookup",
    "CompositeActionLookup",
    "TermTranslation",
    "LearnedPatternLookup",
    "ExpandedStep",
    "CompositeExpansion",
    "AddResult",
    "MiningError",
    "MiningStats",
    "LearningError",
    "LearnedItem",
    "LearningResult",
    "KnowledgeBaseStats",
    "LearnedPatternStats",
]

"""
Action Knowledge Base Entities

Typed entities stored in the four knowledge-base collections:
- AtomicAction: one resolvable page-object method call
- CompositeAction: named ordered chain of action references
- UserTerm: human-taught synonym for one or more actions
- LearnedPattern: phrase-to-action pattern from AI or historical decompositions

Every entity shares the KnowledgeEntity capability (id, kind, usage counter and
timestamps). Composite steps point at atomic actions through ActionReference,
a phrase resolved by re-query at expansion time rather than a foreign key.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, bumped past ``previous`` when the clock has not advanced."""
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def unique(values: List[str]) -> List[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        value = value.strip() if isinstance(value, str) else value
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


class Platform(str, Enum):
    """Target device family of a page object."""
    CTV = "ctv"
    MOBILE = "mobile"
    WEB = "web"
    HTML5 = "html5"
    HDMI = "hdmi"


class Brand(str, Enum):
    """Product brand a page object belongs to."""
    PPLUS = "pplus"
    PLUTOTV = "plutotv"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in {"", "none", "null"}:
        return None
    return value


class KnowledgeEntity(BaseModel):
    """Common capability of every stored entity: identifiable, countable, queryable."""

    id: str = Field(..., min_length=1, description="Unique id within the collection")
    usage_count: int = Field(default=0, ge=0, description="Times this entity was used")
    created_at: datetime = Field(default_factory=utc_now)
    last_used_at: Optional[datetime] = Field(
        default=None,
        description="Last usage increment; None until first use"
    )

    def touch(self) -> None:
        self.last_used_at = next_timestamp(self.last_used_at or self.created_at)

    def record_usage(self) -> None:
        """Increment usage by exactly one and advance last_used_at."""
        self.usage_count += 1
        self.touch()


class AtomicAction(KnowledgeEntity):
    """A single resolvable method-level action."""

    kind: Literal["atomic_action"] = "atomic_action"

    action_name: str = Field(..., description="Canonical verb_noun phrase, e.g. click_play_button")
    method_name: str = Field(..., description="Page-object method name")
    class_name: str = Field(..., description="Declaring page-object class")
    file_path: str = ""
    relative_path: str = ""

    platform: Optional[Platform] = None
    brand: Optional[Brand] = None

    return_type: str = "void"
    parameters: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(
        default_factory=list,
        description="Searchable keywords, deduplicated in first-seen order"
    )
    target_screen: Optional[str] = None
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "method_ctv_pplus_PlayerScreen_clickPlayButton",
            "action_name": "click_play_button",
            "method_name": "clickPlayButton",
            "class_name": "PlayerScreen",
            "platform": "ctv",
            "brand": "pplus",
            "keywords": ["click", "play", "button", "tap", "press"],
            "target_screen": "player",
        }
    })

    @field_validator("platform", "brand", "target_screen", mode="before")
    @classmethod
    def normalize_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("keywords")
    @classmethod
    def dedupe_keywords(cls, v: List[str]) -> List[str]:
        return unique([k.lower() for k in v])


class ActionReference(BaseModel):
    """
    Unresolved reference to an atomic action by phrase.

    Not a foreign key: the phrase is matched against the atomic collection
    every time the owning composite is expanded.
    """

    phrase: str = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def from_phrase(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"phrase": data}
        return data

    def __str__(self) -> str:
        return self.phrase


class CompositeStep(BaseModel):
    """One step of a composite action. Execution order is list order, not ``order``."""

    atomic_action: ActionReference
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: int = 0
    conditional: bool = False
    target_screen: Optional[str] = None


class CompositeAction(KnowledgeEntity):
    """Named, ordered chain of atomic-action references."""

    kind: Literal["composite_action"] = "composite_action"

    action_name: str
    description: str = ""
    steps: List[CompositeStep] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    target_screen: Optional[str] = None


class UserTerm(KnowledgeEntity):
    """Human-taught terminology mapping onto action phrases."""

    kind: Literal["user_term"] = "user_term"

    user_term: str = Field(..., min_length=1)
    expands_to: List[str] = Field(default_factory=list)
    synonyms: List[str] = Field(default_factory=list)
    context: str = ""
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    learned_from: str = "user"

    @field_validator("user_term", mode="before")
    @classmethod
    def normalize_term(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("synonyms")
    @classmethod
    def dedupe_synonyms(cls, v: List[str]) -> List[str]:
        return unique([s.lower() for s in v])


class LearnedPattern(KnowledgeEntity):
    """Reusable phrase-to-action pattern."""

    kind: Literal["learned_pattern"] = "learned_pattern"

    action: str
    target: str
    details: Optional[str] = None
    screen: Optional[str] = None
    platform: Optional[Platform] = None
    brand: Optional[Brand] = None
    phrases: List[str] = Field(default_factory=list)
    source: str = "ai_learned"

    @field_validator("details", "screen", "platform", "brand", mode="before")
    @classmethod
    def normalize_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("phrases")
    @classmethod
    def dedupe_phrases(cls, v: List[str]) -> List[str]:
        return unique(v)


class DecompositionStep(BaseModel):
    """A step of an AI-derived decomposition, input to pattern learning."""

    action: str = Field(..., min_length=1)
    target: str = ""
    details: Optional[str] = None
    is_prerequisite: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_prerequisite", "isPrerequisite"),
    )


class LearningContext(BaseModel):
    """Filters attached to learned patterns and pattern lookups."""

    platform: Optional[Platform] = None
    brand: Optional[Brand] = None
    primary_screen: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("primary_screen", "primaryScreen", "screen"),
    )

    @field_validator("platform", "brand", "primary_screen", mode="before")
    @classmethod
    def normalize_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)


__all__ = [
    "utc_now",
    "next_timestamp",
    "unique",
    "Platform",
    "Brand",
    "KnowledgeEntity",
    "AtomicAction",
    "ActionReference",
    "CompositeStep",
    "CompositeAction",
    "UserTerm",
    "LearnedPattern",
    "DecompositionStep",
    "LearningContext",
]

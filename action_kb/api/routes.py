"""
FastAPI REST endpoints for the action knowledge base.

Provides endpoints for:
- Repository mining and statistics
- Atomic and composite action management and search
- User terminology teaching and translation
- Learned pattern capture and lookup
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from action_kb.knowledge.service import ActionKnowledgeBase
from action_kb.models.actions import (
    AtomicAction,
    Brand,
    CompositeAction,
    DecompositionStep,
    LearnedPattern,
    LearningContext,
    Platform,
    UserTerm,
)
from action_kb.models.results import (
    AddResult,
    AtomicActionLookup,
    CompositeActionLookup,
    CompositeExpansion,
    KnowledgeBaseStats,
    LearnedPatternLookup,
    LearnedPatternStats,
    LearningResult,
    MiningStats,
    TermTranslation,
)

# ===========================
# Request Models
# ===========================


class IndexMethodsRequest(BaseModel):
    repository_path: str = Field(..., min_length=1, description="Root of the page-object sources")


class AtomicActionSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    platform: Optional[Platform] = None
    brand: Optional[Brand] = None
    target_screen: Optional[str] = None
    top_k: int = Field(default=5, ge=1, le=50)


class KeywordsRequest(BaseModel):
    keywords: List[str] = Field(..., min_length=1)


class CompositeActionSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: int = Field(default=3, ge=1, le=50)


class TranslateRequest(BaseModel):
    text: str = Field(..., min_length=1, description="User wording to translate")


class LearnTermRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_term: str = Field(..., min_length=1)
    expands_to: List[str] = Field(..., min_length=1)
    context: str = ""
    synonyms: List[str] = Field(default_factory=list)


class SynonymRequest(BaseModel):
    synonym: str = Field(..., min_length=1)


class LearnPatternsRequest(BaseModel):
    steps: List[DecompositionStep] = Field(..., min_length=1)
    context: LearningContext = Field(default_factory=LearningContext)


class PatternSearchRequest(BaseModel):
    phrase: str = Field(..., min_length=1)
    platform: Optional[Platform] = None
    brand: Optional[Brand] = None
    screen: Optional[str] = None
    top_k: int = Field(default=3, ge=1, le=50)


class ClearResult(BaseModel):
    cleared: bool = True


# ===========================
# Router and Knowledge Base
# ===========================

router = APIRouter(prefix="/api/v1/knowledge-base", tags=["knowledge-base"])

_knowledge_base: Optional[ActionKnowledgeBase] = None


def get_knowledge_base() -> ActionKnowledgeBase:
    """Get or build the knowledge base from the environment."""
    global _knowledge_base
    if _knowledge_base is None:
        _knowledge_base = ActionKnowledgeBase.from_env()
    return _knowledge_base


async def close_knowledge_base() -> None:
    global _knowledge_base
    if _knowledge_base is not None:
        await _knowledge_base.close()
        _knowledge_base = None


# ===========================
# Statistics & Maintenance
# ===========================


@router.get("/stats", response_model=KnowledgeBaseStats)
async def get_stats(kb: ActionKnowledgeBase = Depends(get_knowledge_base)) -> KnowledgeBaseStats:
    """Entity counts per layer."""
    return await kb.get_stats()


@router.delete("/all", response_model=ClearResult)
async def clear_all(kb: ActionKnowledgeBase = Depends(get_knowledge_base)) -> ClearResult:
    """Delete every entity in every layer."""
    await kb.clear_all()
    return ClearResult()


@router.post("/index-methods", response_model=MiningStats)
async def index_methods(
    request: IndexMethodsRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> MiningStats:
    """Mine page-object methods from a repository into atomic actions."""
    return await kb.index_methods_from_repository(request.repository_path)


# ===========================
# Atomic Actions
# ===========================


@router.post("/atomic-actions", response_model=AddResult)
async def add_atomic_action(
    action: AtomicAction,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> AddResult:
    return await kb.add_atomic_action(action)


@router.post("/atomic-actions/search", response_model=AtomicActionLookup)
async def search_atomic_actions(
    request: AtomicActionSearchRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> AtomicActionLookup:
    """Search atomic actions, optionally filtered by platform, brand and screen."""
    filters = {
        "platform": request.platform,
        "brand": request.brand,
        "target_screen": request.target_screen,
    }
    return await kb.find_atomic_action(request.query, filters, request.top_k)


@router.post("/atomic-actions/{action_id}/keywords", response_model=AtomicAction)
async def enrich_keywords(
    request: KeywordsRequest,
    action_id: str = Path(..., min_length=1),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> AtomicAction:
    return await kb.enrich_keywords(action_id, request.keywords)


@router.get("/atomic-actions", response_model=List[AtomicAction])
async def list_atomic_actions(
    limit: int = Query(100, ge=1, le=1000),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> List[AtomicAction]:
    return await kb.list_atomic_actions(limit)


# ===========================
# Composite Actions
# ===========================


@router.post("/composite-actions", response_model=AddResult)
async def add_composite_action(
    composite: CompositeAction,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> AddResult:
    return await kb.add_composite_action(composite)


@router.post("/composite-actions/search", response_model=CompositeActionLookup)
async def search_composite_actions(
    request: CompositeActionSearchRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> CompositeActionLookup:
    return await kb.find_composite_action(request.query, request.top_k)


@router.get("/composite-actions/{composite_id}/expand", response_model=CompositeExpansion)
async def expand_composite_action(
    composite_id: str = Path(..., min_length=1),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> CompositeExpansion:
    """Resolve a composite's steps; unresolved steps are flagged as unmapped."""
    return await kb.expand_composite_action(composite_id)


@router.get("/composite-actions", response_model=List[CompositeAction])
async def list_composite_actions(
    limit: int = Query(100, ge=1, le=1000),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> List[CompositeAction]:
    return await kb.list_composite_actions(limit)


# ===========================
# User Terminology
# ===========================


@router.post("/translate", response_model=TermTranslation)
async def translate(
    request: TranslateRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> TermTranslation:
    """Translate user wording into action phrases."""
    return await kb.translate_user_term(request.text)


@router.post("/learn", response_model=UserTerm)
async def learn_term(
    request: LearnTermRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> UserTerm:
    return await kb.learn_from_user(
        request.user_term,
        request.expands_to,
        context=request.context,
        synonyms=request.synonyms,
    )


@router.post("/terminology/{term_id}/synonyms", response_model=UserTerm)
async def add_synonym(
    request: SynonymRequest,
    term_id: str = Path(..., min_length=1),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> UserTerm:
    return await kb.add_synonym(term_id, request.synonym)


@router.get("/terminology", response_model=List[UserTerm])
async def list_terminology(
    limit: int = Query(100, ge=1, le=1000),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> List[UserTerm]:
    return await kb.list_terminology(limit)


# ===========================
# Learned Patterns
# ===========================


@router.post("/learned-patterns", response_model=LearningResult)
async def learn_patterns(
    request: LearnPatternsRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> LearningResult:
    """Learn phrase patterns from a step decomposition."""
    return await kb.learn_action_patterns(request.steps, request.context)


@router.get("/learned-patterns/stats", response_model=LearnedPatternStats)
async def learned_pattern_stats(
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> LearnedPatternStats:
    return await kb.get_learned_pattern_stats()


@router.get("/learned-patterns", response_model=List[LearnedPattern])
async def list_learned_patterns(
    limit: int = Query(100, ge=1, le=1000),
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> List[LearnedPattern]:
    return await kb.get_learned_patterns(limit)


@router.post("/learned-patterns/search", response_model=LearnedPatternLookup)
async def search_learned_patterns(
    request: PatternSearchRequest,
    kb: ActionKnowledgeBase = Depends(get_knowledge_base),
) -> LearnedPatternLookup:
    context = {"platform": request.platform, "brand": request.brand, "screen": request.screen}
    return await kb.find_learned_pattern(request.phrase, context, request.top_k)

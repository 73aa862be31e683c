"""
Action Knowledge Base Service

Facade over the four-layer action knowledge base:
- Layer 1: atomic actions mined from page objects
- Layer 2: composite actions chaining atomic references
- Layer 3: user terminology taught by people
- Layer 4: learned patterns from AI-derived decompositions

One ActionKnowledgeBase owns one vector store client, the typed stores, the
matcher, the composite resolver and the repository miner. Construct it once
and pass it where it is needed.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from action_kb.core.config import KnowledgeBaseConfig
from action_kb.core.embeddings import BaseEmbeddingProvider, create_embedding_provider
from action_kb.core.errors import DuplicateIdError, KnowledgeBaseError
from action_kb.core.observability import Timer, kb_span, record_metric
from action_kb.knowledge.matcher import ActionFilters, ActionMatcher
from action_kb.knowledge.mining import RepositoryMiner
from action_kb.knowledge.resolver import CompositeResolver
from action_kb.knowledge.store import KnowledgeStores
from action_kb.knowledge.vector_store import VectorStoreClient
from action_kb.knowledge.vocabulary import generate_search_phrases
from action_kb.models.actions import (
    AtomicAction,
    CompositeAction,
    DecompositionStep,
    KnowledgeEntity,
    LearnedPattern,
    LearningContext,
    UserTerm,
    unique,
)
from action_kb.models.results import (
    AddResult,
    AtomicActionLookup,
    CompositeActionLookup,
    CompositeExpansion,
    KnowledgeBaseStats,
    Layer,
    LearnedItem,
    LearnedPatternLookup,
    LearnedPatternStats,
    LearningError,
    LearningResult,
    MiningError,
    MiningStats,
    TermTranslation,
)

logger = logging.getLogger(__name__)

_NON_ID = re.compile(r"[^a-z0-9]+")


def _slug(*parts: Optional[str]) -> str:
    text = "_".join(str(p) for p in parts if p)
    return _NON_ID.sub("_", text.lower()).strip("_")


def user_term_id(user_term: str) -> str:
    """Deterministic id for a taught term, so reteaching updates it."""
    slug = _slug(user_term)
    return f"term_{slug}" if slug else f"term_{uuid.uuid4().hex[:12]}"


def pattern_id(
    action: str,
    target: str,
    screen: Optional[str] = None,
    platform: Optional[str] = None,
    brand: Optional[str] = None,
) -> str:
    """Deterministic id for a learned pattern, so relearning upserts it."""
    return "pattern_" + _slug(action, target, screen, platform, brand)


class ActionKnowledgeBase:
    """
    Four-layer action knowledge base.

    Maps free-text action descriptions onto page-object methods and learns
    from usage, user teaching and AI decompositions.
    """

    def __init__(
        self,
        config: Optional[KnowledgeBaseConfig] = None,
        client: Optional[VectorStoreClient] = None,
        embedder: Optional[BaseEmbeddingProvider] = None,
    ):
        """
        Wire the knowledge base.

        Args:
            config: Knowledge base configuration (defaults when omitted)
            client: Vector store client; built from config when omitted
            embedder: Embedding provider; chosen from config when omitted
        """
        self.config = config or KnowledgeBaseConfig()
        if embedder is None:
            embedder = client.embedder if client is not None else create_embedding_provider(
                self.config.embedding
            )
        self.embedder = embedder
        self.client = client or VectorStoreClient(
            self.embedder,
            persist_directory=self.config.persist_directory,
            lexical_matching=self.config.lexical_matching,
        )
        self.stores = KnowledgeStores(self.client)
        self.matcher = ActionMatcher(
            self.stores,
            self.config.thresholds,
            atomic_top_k=self.config.atomic_top_k,
            composite_top_k=self.config.composite_top_k,
            terminology_top_k=self.config.terminology_top_k,
            pattern_top_k=self.config.pattern_top_k,
        )
        self.resolver = CompositeResolver(self.stores, self.matcher)
        self.miner = RepositoryMiner(self.config.mining)

        logger.info(
            f"Action knowledge base ready: embedder={self.embedder.__class__.__name__}, "
            f"persist_directory={self.config.persist_directory}"
        )

    @classmethod
    def from_env(cls) -> "ActionKnowledgeBase":
        return cls(KnowledgeBaseConfig.from_env())

    async def __aenter__(self) -> "ActionKnowledgeBase":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ============ Layer 1: Atomic Actions ============

    async def add_atomic_action(self, action: Union[AtomicAction, Mapping[str, Any]]) -> AddResult:
        """
        Add an atomic action, or update it when the id already exists.

        The update keeps the stored created_at and usage_count; every other
        field takes the new value.
        """
        action = AtomicAction.model_validate(action) if isinstance(action, Mapping) else action

        with kb_span("kb.add_atomic_action", {"action.id": action.id}):
            try:
                await self.stores.atomic.add(action)
                logger.debug(f"Added atomic action: {action.action_name} -> "
                             f"{action.class_name}.{action.method_name}()")
                return AddResult(id=action.id, created=True)
            except DuplicateIdError:
                existing = await self.stores.atomic.find(action.id)

            if existing is None:
                # collection cleared between add and find
                await self.stores.atomic.add(action)
                return AddResult(id=action.id, created=True)

            merged = action.model_copy(update={
                "created_at": existing.created_at,
                "usage_count": existing.usage_count,
                "last_used_at": existing.last_used_at,
            })
            await self.stores.atomic.update(merged)
            logger.debug(f"Atomic action {action.id} already exists, updated instead")
            return AddResult(id=action.id, updated=True, existed=True)

    async def update_atomic_action(self, action_id: str, **changes: Any) -> AtomicAction:
        """Apply field changes to a stored atomic action; raises NotFoundError."""
        existing = await self.stores.atomic.get(action_id)
        data = existing.model_dump()
        data.update({k: v for k, v in changes.items() if k not in {"id", "kind"}})
        updated = AtomicAction.model_validate(data)
        return await self.stores.atomic.update(updated)

    async def enrich_keywords(self, action_id: str, keywords: Iterable[str]) -> AtomicAction:
        """
        Add keywords to an atomic action.

        Args:
            action_id: Atomic action id
            keywords: Keywords to merge (deduplicated, existing order first)

        Returns:
            The updated action, re-indexed with the new keywords

        Raises:
            NotFoundError: No action with that id
        """
        existing = await self.stores.atomic.get(action_id)
        merged = existing.model_copy(update={
            "keywords": unique([k.lower() for k in [*existing.keywords, *keywords]]),
        })
        await self.stores.atomic.update(merged)
        logger.info(f"Enriched keywords for {action_id}: {len(merged.keywords)} total")
        return merged

    async def get_atomic_action(self, action_id: str) -> AtomicAction:
        return await self.stores.atomic.get(action_id)

    async def find_atomic_action(
        self,
        query: str,
        filters: ActionFilters = None,
        top_k: Optional[int] = None,
    ) -> AtomicActionLookup:
        with kb_span("kb.find_atomic_action", {"query": query}), Timer("kb_find_atomic_action"):
            lookup = await self.matcher.find_atomic_action(query, filters, top_k)
        record_metric("kb_atomic_lookups_total", 1, {"found": str(lookup.found).lower()})
        return lookup

    async def list_atomic_actions(self, limit: int = 100) -> List[AtomicAction]:
        return await self.stores.atomic.all(limit=limit)

    # ============ Layer 2: Composite Actions ============

    async def add_composite_action(
        self, composite: Union[CompositeAction, Mapping[str, Any]]
    ) -> AddResult:
        """Add a composite action; an existing id is left untouched and flagged."""
        composite = (
            CompositeAction.model_validate(composite)
            if isinstance(composite, Mapping) else composite
        )
        try:
            await self.stores.composite.add(composite)
        except DuplicateIdError:
            logger.debug(f"Composite action {composite.id} already exists")
            return AddResult(id=composite.id, existed=True)

        logger.debug(f"Added composite action: {composite.action_name} "
                     f"({len(composite.steps)} steps)")
        return AddResult(id=composite.id, created=True)

    async def get_composite_action(self, composite_id: str) -> CompositeAction:
        return await self.stores.composite.get(composite_id)

    async def find_composite_action(
        self, query: str, top_k: Optional[int] = None
    ) -> CompositeActionLookup:
        with kb_span("kb.find_composite_action", {"query": query}):
            return await self.matcher.find_composite_action(query, top_k)

    async def expand_composite_action(self, composite_id: str) -> CompositeExpansion:
        """Resolve every step of a composite; raises NotFoundError for unknown ids."""
        with kb_span("kb.expand_composite_action", {"composite.id": composite_id}):
            expansion = await self.resolver.expand(composite_id)
        record_metric(
            "kb_composite_expansions_total", 1,
            {"unmapped": str(expansion.has_unmapped_steps).lower()},
        )
        return expansion

    async def list_composite_actions(self, limit: int = 100) -> List[CompositeAction]:
        return await self.stores.composite.all(limit=limit)

    # ============ Layer 3: User Terminology ============

    async def learn_from_user(
        self,
        user_term: str,
        expands_to: List[str],
        context: str = "",
        synonyms: Optional[List[str]] = None,
    ) -> UserTerm:
        """
        Teach the knowledge base a user's wording.

        Args:
            user_term: The user's phrase (normalized to lower case)
            expands_to: Action phrases the term stands for, in order
            context: Free-text context stored with the term
            synonyms: Other phrasings of the same term

        Returns:
            The stored term. Teaching an already known term updates it and
            merges synonyms.
        """
        term = UserTerm(
            id=user_term_id(user_term.strip().lower()),
            user_term=user_term,
            expands_to=list(expands_to),
            synonyms=list(synonyms or []),
            context=context,
            usage_count=1,
            confidence=1.0,
        )

        try:
            await self.stores.terminology.add(term)
        except DuplicateIdError:
            existing = await self.stores.terminology.get(term.id)
            term = term.model_copy(update={
                "synonyms": unique([*existing.synonyms, *term.synonyms]),
                "usage_count": existing.usage_count,
                "created_at": existing.created_at,
                "last_used_at": existing.last_used_at,
            })
            await self.stores.terminology.update(term)

        logger.info(f"Learned user term: '{term.user_term}' -> {term.expands_to}")
        return term

    async def add_synonym(self, term_id: str, synonym: str) -> UserTerm:
        """Add a synonym to a taught term; raises NotFoundError."""
        existing = await self.stores.terminology.get(term_id)
        updated = existing.model_copy(update={
            "synonyms": unique([*existing.synonyms, synonym.strip().lower()]),
        })
        await self.stores.terminology.update(updated)
        return updated

    async def get_user_term(self, term_id: str) -> UserTerm:
        return await self.stores.terminology.get(term_id)

    async def translate_user_term(self, user_input: str) -> TermTranslation:
        with kb_span("kb.translate_user_term", {"input": user_input}):
            translation = await self.matcher.translate_user_term(user_input)
        record_metric(
            "kb_translations_total", 1,
            {"source": translation.source.value if translation.source else "none"},
        )
        return translation

    async def list_terminology(self, limit: int = 100) -> List[UserTerm]:
        return await self.stores.terminology.all(limit=limit)

    # ============ Layer 4: Learned Patterns ============

    async def learn_action_patterns(
        self,
        steps: Iterable[Union[DecompositionStep, Mapping[str, Any]]],
        context: Union[LearningContext, Mapping[str, Any], None] = None,
    ) -> LearningResult:
        """
        Learn phrase patterns from a decomposition.

        Prerequisite steps are skipped. The screen is the context's primary
        screen, else the step target without a trailing "_screen". Patterns
        have deterministic ids, so relearning one updates its phrases.
        Failures are recorded per step and never abort the batch.
        """
        if context is None:
            context = LearningContext()
        elif isinstance(context, Mapping):
            context = LearningContext.model_validate(context)

        result = LearningResult()
        for raw in steps:
            step = DecompositionStep.model_validate(raw) if isinstance(raw, Mapping) else raw
            if step.is_prerequisite:
                result.skipped.append(step.action)
                continue

            screen = context.primary_screen or re.sub(r"_screen$", "", step.target) or None
            pattern = LearnedPattern(
                id=pattern_id(
                    step.action, step.target, screen,
                    context.platform.value if context.platform else None,
                    context.brand.value if context.brand else None,
                ),
                action=step.action,
                target=step.target,
                details=step.details,
                screen=screen,
                platform=context.platform,
                brand=context.brand,
                phrases=generate_search_phrases(step.action, step.target, step.details),
            )

            try:
                await self._upsert_pattern(pattern)
            except KnowledgeBaseError as e:
                logger.debug(f"Could not store pattern {pattern.id}: {e}")
                result.errors.append(LearningError(action=step.action, error=str(e)))
                continue

            result.learned.append(LearnedItem(id=pattern.id, action=step.action, target=step.target))

        if result.learned:
            logger.info(f"Learned {len(result.learned)} action pattern(s)")
        record_metric("kb_patterns_learned_total", len(result.learned))
        return result

    async def _upsert_pattern(self, pattern: LearnedPattern) -> None:
        try:
            await self.stores.patterns.add(pattern)
        except DuplicateIdError:
            existing = await self.stores.patterns.get(pattern.id)
            merged = pattern.model_copy(update={
                "phrases": unique([*existing.phrases, *pattern.phrases]),
                "usage_count": existing.usage_count,
                "created_at": existing.created_at,
                "last_used_at": existing.last_used_at,
            })
            await self.stores.patterns.update(merged)

    async def find_learned_pattern(
        self,
        phrase: str,
        context: Union[LearningContext, Mapping[str, Any], None] = None,
        top_k: Optional[int] = None,
    ) -> LearnedPatternLookup:
        with kb_span("kb.find_learned_pattern", {"phrase": phrase}):
            return await self.matcher.find_learned_pattern(phrase, context, top_k)

    async def get_learned_patterns(self, limit: int = 100) -> List[LearnedPattern]:
        return await self.stores.patterns.all(limit=limit)

    async def get_learned_pattern_stats(self) -> LearnedPatternStats:
        patterns = await self.stores.patterns.all()
        stats = LearnedPatternStats(total_patterns=await self.stores.patterns.count())
        for pattern in patterns:
            stats.total_usage += pattern.usage_count
            stats.by_action[pattern.action] = stats.by_action.get(pattern.action, 0) + 1
            screen = pattern.screen or "unknown"
            stats.by_screen[screen] = stats.by_screen.get(screen, 0) + 1
        return stats

    # ============ Mining ============

    async def index_methods_from_repository(self, repository_path: Union[str, Path]) -> MiningStats:
        """
        Mine page-object methods from a repository into atomic actions.

        Actions added before a failure stay in the store; per-file and
        per-action failures are recorded in the returned stats.
        """
        root = Path(repository_path)
        logger.info(f"Mining methods from repository: {root}")
        stats = MiningStats()

        with kb_span("kb.index_methods", {"repository": str(root)}), Timer("kb_index_methods"):
            for file_result in self.miner.iter_file_actions(root, stats.errors):
                stats.files_scanned += 1
                stats.methods_found += file_result.methods_found
                for action in file_result.actions:
                    try:
                        await self.add_atomic_action(action)
                    except KnowledgeBaseError as e:
                        logger.warning(f"Failed to store {action.id}: {e}")
                        stats.errors.append(MiningError(path=str(file_result.path), error=str(e)))
                        continue
                    stats.actions_created += 1

        record_metric("kb_actions_mined_total", stats.actions_created)
        logger.info(
            f"Method indexing complete: {stats.actions_created} actions from "
            f"{stats.methods_found} methods in {stats.files_scanned} files "
            f"({len(stats.errors)} errors)"
        )
        return stats

    # ============ Statistics & Utilities ============

    async def increment_usage(self, layer: Union[Layer, str], entity_id: str) -> KnowledgeEntity:
        """Bump one entity's usage counter; raises NotFoundError for unknown ids."""
        return await self.stores.for_layer(Layer(layer)).increment_usage(entity_id)

    async def list_collection(self, layer: Union[Layer, str], limit: int = 100) -> List[KnowledgeEntity]:
        return await self.stores.for_layer(Layer(layer)).all(limit=limit)

    async def get_stats(self) -> KnowledgeBaseStats:
        return KnowledgeBaseStats(**await self.stores.counts())

    async def clear_all(self) -> None:
        """Delete every entity in every layer."""
        await self.stores.clear_all()
        logger.info("Action knowledge base cleared")

    def persist(self) -> List[Path]:
        return self.client.persist()

    async def close(self) -> None:
        if self.config.persist_directory is not None:
            self.persist()
        await self.embedder.close()


__all__ = ["ActionKnowledgeBase", "pattern_id", "user_term_id"]

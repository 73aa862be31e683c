"""
Action Matching and Ranking Engine

Turns free-text queries plus optional platform/brand/screen filters into
confidence-ranked candidates from the knowledge stores:
- Atomic action lookup (permissive threshold)
- Composite action lookup (strict distance threshold)
- User terminology translation with atomic-action fallback
- Learned pattern lookup with usage tracking
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from action_kb.core.config import MatchThresholds
from action_kb.core.errors import KnowledgeBaseError, StoreUnavailableError
from action_kb.knowledge.store import KnowledgeStores
from action_kb.knowledge.vector_store import build_where
from action_kb.models.actions import LearningContext
from action_kb.models.results import (
    AtomicActionLookup,
    AtomicActionMatch,
    CompositeActionLookup,
    CompositeActionMatch,
    LearnedPatternLookup,
    LearnedPatternMatch,
    TermTranslation,
    TranslationSource,
    UserTermMatch,
)

logger = logging.getLogger(__name__)

ActionFilters = Union[str, Mapping[str, Any], None]

# Store failures that become found=False on query paths
_QUERY_ERRORS = (KnowledgeBaseError, ValueError)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def normalize_filters(filters: ActionFilters) -> Dict[str, Optional[str]]:
    """
    Platform/brand/target_screen filters from a mapping.

    A bare string is taken as the target screen. Blank values are dropped.
    """
    if filters is None:
        return {"platform": None, "brand": None, "target_screen": None}
    if isinstance(filters, str):
        filters = {"target_screen": filters}

    def pick(*names: str) -> Optional[str]:
        for name in names:
            value = _plain(filters.get(name))
            if value:
                return str(value)
        return None

    return {
        "platform": pick("platform"),
        "brand": pick("brand"),
        "target_screen": pick("target_screen", "targetScreen", "screen"),
    }


def normalize_pattern_context(
    context: Union[LearningContext, Mapping[str, Any], None]
) -> Dict[str, Optional[str]]:
    """Pattern filters from a LearningContext or a mapping with the same keys."""
    if context is None:
        return {"platform": None, "brand": None, "screen": None}
    if not isinstance(context, LearningContext):
        context = LearningContext.model_validate(dict(context))
    return {
        "platform": _plain(context.platform),
        "brand": _plain(context.brand),
        "screen": context.primary_screen,
    }


class ActionMatcher:
    """Confidence-ranked retrieval over the four knowledge stores."""

    def __init__(
        self,
        stores: KnowledgeStores,
        thresholds: Optional[MatchThresholds] = None,
        atomic_top_k: int = 5,
        composite_top_k: int = 3,
        terminology_top_k: int = 3,
        pattern_top_k: int = 3,
    ):
        self.stores = stores
        self.thresholds = thresholds or MatchThresholds()
        self.atomic_top_k = atomic_top_k
        self.composite_top_k = composite_top_k
        self.terminology_top_k = terminology_top_k
        self.pattern_top_k = pattern_top_k

    async def find_atomic_action(
        self,
        query: str,
        filters: ActionFilters = None,
        top_k: Optional[int] = None,
    ) -> AtomicActionLookup:
        """
        Find atomic actions for a phrase.

        Query text is the phrase followed by whichever filters are supplied;
        the same filters restrict candidates by equality. The lookup is found
        when the best confidence exceeds ``atomic_min_confidence``.
        """
        fields = normalize_filters(filters)
        query_text = " ".join(
            part for part in [query, fields["platform"], fields["brand"], fields["target_screen"]]
            if part
        )
        where = build_where(**fields)

        try:
            hits = await self.stores.atomic.query(
                query_text, top_k=top_k or self.atomic_top_k, where=where
            )
        except StoreUnavailableError:
            raise
        except _QUERY_ERRORS as e:
            logger.error(f"Failed to find atomic action: {e}")
            return AtomicActionLookup(query=query, error=str(e))

        candidates = [
            AtomicActionMatch(action=h.entity, distance=h.distance, confidence=h.confidence)
            for h in hits
        ]
        if not candidates:
            return AtomicActionLookup(query=query)

        best = candidates[0]
        return AtomicActionLookup(
            query=query,
            found=best.confidence > self.thresholds.atomic_min_confidence,
            best_match=best,
            candidates=candidates,
        )

    async def find_composite_action(
        self, query: str, top_k: Optional[int] = None
    ) -> CompositeActionLookup:
        """Composite lookup; found only when the closest distance is under the strict threshold."""
        try:
            hits = await self.stores.composite.query(query, top_k=top_k or self.composite_top_k)
        except StoreUnavailableError:
            raise
        except _QUERY_ERRORS as e:
            logger.error(f"Failed to find composite action: {e}")
            return CompositeActionLookup(query=query, error=str(e))

        candidates = [
            CompositeActionMatch(composite=h.entity, distance=h.distance, confidence=h.confidence)
            for h in hits
        ]
        if not candidates:
            return CompositeActionLookup(query=query)

        best = candidates[0]
        return CompositeActionLookup(
            query=query,
            found=best.distance < self.thresholds.composite_max_distance,
            best_match=best,
            candidates=candidates,
        )

    async def translate_user_term(self, user_input: str) -> TermTranslation:
        """Translate wording via taught terminology, then via atomic actions."""
        text = user_input.strip().lower()
        best_term: Optional[UserTermMatch] = None

        try:
            hits = await self.stores.terminology.query(text, top_k=self.terminology_top_k)
        except StoreUnavailableError:
            raise
        except _QUERY_ERRORS as e:
            logger.error(f"Failed to translate user term: {e}")
            return TermTranslation(input=user_input, error=str(e))

        if hits:
            best = hits[0]
            best_term = UserTermMatch(term=best.entity, distance=best.distance, confidence=best.confidence)
            if best.distance < self.thresholds.terminology_max_distance:
                term = await self.stores.terminology.increment_usage(best.entity.id)
                logger.debug(f"Translated '{user_input}' via learned term '{term.user_term}'")
                return TermTranslation(
                    input=user_input,
                    found=True,
                    source=TranslationSource.LEARNED_TERMINOLOGY,
                    expands_to=list(term.expands_to),
                    confidence=best.confidence,
                    term=term,
                    best_term_candidate=best_term,
                )

        lookup = await self.find_atomic_action(text)
        if lookup.found and lookup.best_match is not None:
            return TermTranslation(
                input=user_input,
                found=True,
                source=TranslationSource.ATOMIC_ACTION_MATCH,
                expands_to=[lookup.best_match.action.action_name],
                confidence=lookup.best_match.confidence,
                atomic_match=lookup.best_match,
                best_term_candidate=best_term,
            )

        return TermTranslation(
            input=user_input,
            best_term_candidate=best_term,
            atomic_match=lookup.best_match,
            suggestion=f"Teach the term '{text}' so it maps to the intended action(s)",
            error=lookup.error,
        )

    async def find_learned_pattern(
        self,
        phrase: str,
        context: Union[LearningContext, Mapping[str, Any], None] = None,
        top_k: Optional[int] = None,
    ) -> LearnedPatternLookup:
        """
        Find learned patterns for a phrase.

        Candidates above ``learned_pattern_min_confidence`` are matches; the
        best match has its usage incremented.
        """
        where = build_where(**normalize_pattern_context(context))

        try:
            hits = await self.stores.patterns.query(
                phrase.lower(), top_k=top_k or self.pattern_top_k, where=where
            )
        except StoreUnavailableError:
            raise
        except _QUERY_ERRORS as e:
            logger.error(f"Failed to find learned pattern: {e}")
            return LearnedPatternLookup(phrase=phrase, error=str(e))

        candidates = [
            LearnedPatternMatch(pattern=h.entity, distance=h.distance, confidence=h.confidence)
            for h in hits
        ]
        if not candidates:
            return LearnedPatternLookup(phrase=phrase)

        threshold = self.thresholds.learned_pattern_min_confidence
        matches = [c for c in candidates if c.confidence > threshold]
        if not matches:
            return LearnedPatternLookup(phrase=phrase, best_match=candidates[0], candidates=candidates)

        winner = matches[0]
        updated = await self.stores.patterns.increment_usage(winner.pattern.id)
        winner = LearnedPatternMatch(pattern=updated, distance=winner.distance, confidence=winner.confidence)
        matches[0] = winner
        if candidates[0].pattern.id == updated.id:
            candidates[0] = winner

        return LearnedPatternLookup(
            phrase=phrase,
            found=True,
            best_match=winner,
            matches=matches,
            candidates=candidates,
        )


__all__ = ["ActionMatcher", "ActionFilters", "normalize_filters", "normalize_pattern_context"]

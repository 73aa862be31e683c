"""Composite action expansion into atomic actions."""

import logging
from typing import List

from action_kb.knowledge.matcher import ActionMatcher
from action_kb.knowledge.store import KnowledgeStores
from action_kb.models.results import CompositeExpansion, ExpandedStep

logger = logging.getLogger(__name__)


class CompositeResolver:
    """
    Expands a composite action step by step.

    Each step's action reference is re-queried against the atomic collection
    at expansion time. Steps that do not resolve become unmapped placeholders
    and never block the steps after them.
    """

    def __init__(self, stores: KnowledgeStores, matcher: ActionMatcher):
        self.stores = stores
        self.matcher = matcher

    async def expand(self, composite_id: str) -> CompositeExpansion:
        composite = await self.stores.composite.get(composite_id)

        steps: List[ExpandedStep] = []
        for step in composite.steps:
            phrase = step.atomic_action.phrase
            lookup = await self.matcher.find_atomic_action(
                phrase, {"target_screen": step.target_screen}
            )

            if lookup.found and lookup.best_match is not None:
                steps.append(ExpandedStep(
                    phrase=phrase,
                    order=step.order,
                    conditional=step.conditional,
                    parameters=dict(step.parameters),
                    action=lookup.best_match.action,
                    confidence=lookup.best_match.confidence,
                ))
            else:
                logger.debug(f"{composite_id}: step '{phrase}' is unmapped")
                steps.append(ExpandedStep(
                    phrase=phrase,
                    order=step.order,
                    conditional=step.conditional,
                    parameters=dict(step.parameters),
                    unmapped=True,
                ))

        await self.stores.composite.increment_usage(composite_id)

        expansion = CompositeExpansion(
            composite_id=composite.id,
            action_name=composite.action_name,
            description=composite.description,
            prerequisites=list(composite.prerequisites),
            steps=steps,
        )
        if expansion.has_unmapped_steps:
            unmapped = sum(1 for s in steps if s.unmapped)
            logger.info(f"{composite_id}: {unmapped}/{len(steps)} step(s) unmapped")
        return expansion


__all__ = ["CompositeResolver"]

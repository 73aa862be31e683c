"""
Action knowledge base: stores, vocabulary, matching, composite resolution
and repository mining.
"""

from action_kb.knowledge.matcher import ActionMatcher
from action_kb.knowledge.mining import RepositoryMiner
from action_kb.knowledge.resolver import CompositeResolver
from action_kb.knowledge.service import ActionKnowledgeBase
from action_kb.knowledge.store import KnowledgeStore, KnowledgeStores, StoreHit
from action_kb.knowledge.vector_store import (
    InMemoryVectorCollection,
    QueryResult,
    VectorCollection,
    VectorStoreClient,
    build_where,
)

__all__ = [
    "ActionKnowledgeBase",
    "ActionMatcher",
    "CompositeResolver",
    "RepositoryMiner",
    "KnowledgeStore",
    "KnowledgeStores",
    "StoreHit",
    "InMemoryVectorCollection",
    "QueryResult",
    "VectorCollection",
    "VectorStoreClient",
    "build_where",
]

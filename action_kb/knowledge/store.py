"""
Typed knowledge stores over the vector collections.

A KnowledgeStore binds one entity class to one named collection: entities go
in as ``model_dump(mode="json")`` metadata plus a searchable document (and,
for the strict layers, the key phrases a lookup must name), and come back out
through ``model_validate``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from action_kb.core.embeddings import distance_to_confidence
from action_kb.core.errors import NotFoundError, validate_id
from action_kb.knowledge.vector_store import (
    InMemoryVectorCollection,
    Metadata,
    VectorStoreClient,
    Where,
)
from action_kb.knowledge.vocabulary import (
    atomic_document,
    composite_document,
    composite_phrases,
    pattern_document,
    term_document,
    term_phrases,
)
from action_kb.models.actions import (
    AtomicAction,
    CompositeAction,
    KnowledgeEntity,
    LearnedPattern,
    UserTerm,
)
from action_kb.models.results import Layer

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=KnowledgeEntity)


@dataclass
class StoreHit(Generic[T]):
    """One ranked query hit."""
    entity: T
    distance: float
    confidence: float


class KnowledgeStore(Generic[T]):
    """Typed collection of one entity kind."""

    def __init__(
        self,
        client: VectorStoreClient,
        layer: Layer,
        entity_type: Type[T],
        document_builder: Callable[[T], str],
        phrase_builder: Optional[Callable[[T], List[str]]] = None,
    ):
        self.client = client
        self.layer = layer
        self.entity_type = entity_type
        self.document_builder = document_builder
        self.phrase_builder = phrase_builder

    @property
    def name(self) -> str:
        return self.layer.value

    @property
    def collection(self) -> InMemoryVectorCollection:
        return self.client.get_or_create_collection(self.name)

    def to_metadata(self, entity: T) -> Metadata:
        return entity.model_dump(mode="json")

    def from_metadata(self, metadata: Metadata) -> T:
        return self.entity_type.model_validate(metadata)

    def document_for(self, entity: T) -> str:
        return self.document_builder(entity)

    def phrases_for(self, entities: List[T]) -> Optional[List[List[str]]]:
        if self.phrase_builder is None:
            return None
        return [self.phrase_builder(e) for e in entities]

    async def add(self, entity: T, document: Optional[str] = None) -> T:
        """Insert a new entity; raises DuplicateIdError when the id exists."""
        validate_id(entity.id)
        await self.collection.add(
            [entity.id],
            [document if document is not None else self.document_for(entity)],
            [self.to_metadata(entity)],
            phrases=self.phrases_for([entity]),
        )
        return entity

    async def add_many(self, entities: List[T], documents: Optional[List[str]] = None) -> List[T]:
        if not entities:
            return []
        if documents is None:
            documents = [self.document_for(e) for e in entities]
        await self.collection.add(
            [e.id for e in entities],
            documents,
            [self.to_metadata(e) for e in entities],
            phrases=self.phrases_for(entities),
        )
        return entities

    async def find(self, entity_id: str) -> Optional[T]:
        validate_id(entity_id)
        records = await self.collection.get(ids=[entity_id])
        return self.from_metadata(records[0].metadata) if records else None

    async def get(self, entity_id: str) -> T:
        entity = await self.find(entity_id)
        if entity is None:
            raise NotFoundError(self.name, entity_id)
        return entity

    async def get_many(self, ids: List[str]) -> List[T]:
        records = await self.collection.get(ids=ids)
        return [self.from_metadata(r.metadata) for r in records]

    async def update(self, entity: T, document: Optional[str] = None) -> T:
        """Replace a stored entity, re-embedding its document; raises NotFoundError."""
        validate_id(entity.id)
        await self.collection.update(
            [entity.id],
            [self.to_metadata(entity)],
            documents=[document if document is not None else self.document_for(entity)],
            phrases=self.phrases_for([entity]),
        )
        return entity

    async def query(
        self,
        text: str,
        top_k: int = 5,
        where: Optional[Where] = None,
    ) -> List[StoreHit[T]]:
        result = await self.collection.query([text], n_results=top_k, where=where)
        if not result.ids or not result.ids[0]:
            return []

        return [
            StoreHit(
                entity=self.from_metadata(metadata),
                distance=distance,
                confidence=distance_to_confidence(distance),
            )
            for metadata, distance in zip(result.metadatas[0], result.distances[0])
        ]

    async def increment_usage(self, entity_id: str) -> T:
        """Bump usage_count by one and advance last_used_at, atomically."""
        validate_id(entity_id)

        def bump(metadata: Metadata) -> Metadata:
            entity = self.from_metadata(metadata)
            entity.record_usage()
            return self.to_metadata(entity)

        return self.from_metadata(await self.collection.mutate(entity_id, bump))

    async def all(self, limit: Optional[int] = None) -> List[T]:
        records = await self.collection.get(limit=limit)
        return [self.from_metadata(r.metadata) for r in records]

    async def count(self) -> int:
        return await self.collection.count()

    async def clear(self) -> None:
        self.client.delete_collection(self.name)
        self.client.get_or_create_collection(self.name)
        logger.info(f"Cleared collection '{self.name}'")


class KnowledgeStores:
    """The four knowledge-base stores sharing one vector store client."""

    def __init__(self, client: VectorStoreClient):
        self.client = client
        self.atomic: KnowledgeStore[AtomicAction] = KnowledgeStore(
            client, Layer.ATOMIC, AtomicAction, atomic_document
        )
        self.composite: KnowledgeStore[CompositeAction] = KnowledgeStore(
            client, Layer.COMPOSITE, CompositeAction, composite_document, composite_phrases
        )
        self.terminology: KnowledgeStore[UserTerm] = KnowledgeStore(
            client, Layer.TERMINOLOGY, UserTerm, term_document, term_phrases
        )
        self.patterns: KnowledgeStore[LearnedPattern] = KnowledgeStore(
            client, Layer.PATTERNS, LearnedPattern, pattern_document
        )
        for store in self:
            client.get_or_create_collection(store.name)

    def __iter__(self):
        return iter([self.atomic, self.composite, self.terminology, self.patterns])

    def for_layer(self, layer: Layer) -> KnowledgeStore:
        return {
            Layer.ATOMIC: self.atomic,
            Layer.COMPOSITE: self.composite,
            Layer.TERMINOLOGY: self.terminology,
            Layer.PATTERNS: self.patterns,
        }[Layer(layer)]

    async def counts(self) -> Dict[str, int]:
        return {store.name: await store.count() for store in self}

    async def clear_all(self) -> None:
        """Delete and recreate every collection."""
        for store in self:
            await store.clear()


__all__ = ["StoreHit", "KnowledgeStore", "KnowledgeStores"]

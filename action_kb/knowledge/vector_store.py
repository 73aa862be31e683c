"""
Vector Store for the Action Knowledge Base

In-process brute-force vector index with the per-collection operations of a
vector database: add, get, update, query with metadata filters, count and
peek. Collections are created, listed, dropped and optionally snapshotted to
JSON through VectorStoreClient.

Similarity is cosine over embeddings. With lexical matching enabled the
similarity of a record is max(cosine, lexical score). Records added with key
phrases score the best Dice overlap between the query tokens and one phrase,
so a partial query cannot reach distance 0. Records without phrases score the
fraction of the query's content tokens found among the document's tokens, so
synonym-expanded documents match reworded queries even with hash embeddings.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from action_kb.core.embeddings import BaseEmbeddingProvider
from action_kb.core.errors import (
    DuplicateIdError,
    NotFoundError,
    StoreUnavailableError,
    validate_id,
)
from action_kb.knowledge.vocabulary import tokenize

logger = logging.getLogger(__name__)

Metadata = Dict[str, Any]
Where = Dict[str, Any]


@dataclass
class VectorRecord:
    """A stored document with its metadata and embedding."""
    id: str
    document: str
    metadata: Metadata
    embedding: List[float] = field(default_factory=list, repr=False)
    seq: int = 0
    tokens: FrozenSet[str] = field(default_factory=frozenset, repr=False)
    phrases: List[str] = field(default_factory=list)
    phrase_tokens: Tuple[FrozenSet[str], ...] = field(default=(), repr=False)


@dataclass
class QueryResult:
    """Query output, one inner list per query text."""
    ids: List[List[str]] = field(default_factory=list)
    documents: List[List[str]] = field(default_factory=list)
    metadatas: List[List[Metadata]] = field(default_factory=list)
    distances: List[List[float]] = field(default_factory=list)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def build_where(**fields: Any) -> Optional[Where]:
    """
    Conjunction of equality predicates over the supplied fields.

    None values are dropped; one predicate is returned bare, several are
    wrapped in ``$and``, none yields None.
    """
    predicates = [
        {name: {"$eq": _plain(value)}}
        for name, value in fields.items()
        if value is not None
    ]
    if not predicates:
        return None
    if len(predicates) == 1:
        return predicates[0]
    return {"$and": predicates}


def matches_where(metadata: Metadata, where: Optional[Where]) -> bool:
    """Evaluate a where filter against one metadata mapping."""
    if not where:
        return True

    for key, condition in where.items():
        if key == "$and":
            if not all(matches_where(metadata, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches_where(metadata, sub) for sub in condition):
                return False
        elif isinstance(condition, dict):
            actual = metadata.get(key)
            for op, expected in condition.items():
                expected = _plain(expected)
                if op == "$eq":
                    if actual != expected:
                        return False
                elif op == "$ne":
                    if actual == expected:
                        return False
                elif op == "$in":
                    if actual not in [_plain(v) for v in expected]:
                        return False
                else:
                    raise ValueError(f"Unsupported where operator: {op}")
        elif metadata.get(key) != _plain(condition):
            return False

    return True


def lexical_coverage(query_tokens: Sequence[str], document_tokens: FrozenSet[str]) -> float:
    """Fraction of distinct query tokens present in the document."""
    distinct = set(query_tokens)
    if not distinct:
        return 0.0
    return len(distinct & document_tokens) / len(distinct)


def lexical_dice(query_tokens: Sequence[str], phrase_tokens: FrozenSet[str]) -> float:
    """Dice coefficient between the distinct query tokens and a phrase."""
    distinct = set(query_tokens)
    if not distinct or not phrase_tokens:
        return 0.0
    return 2 * len(distinct & phrase_tokens) / (len(distinct) + len(phrase_tokens))


def lexical_score(query_tokens: Sequence[str], record: VectorRecord) -> float:
    """Best phrase overlap for records with key phrases, document coverage otherwise."""
    if record.phrase_tokens:
        return max(lexical_dice(query_tokens, tokens) for tokens in record.phrase_tokens)
    return lexical_coverage(query_tokens, record.tokens)


def _phrase_tokens(phrases: Sequence[str]) -> Tuple[FrozenSet[str], ...]:
    return tuple(frozenset(tokenize(phrase)) for phrase in phrases)


def cosine_similarity_batch(query: List[float], embeddings: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query vector against a matrix of embeddings."""
    query_arr = np.asarray(query, dtype=np.float64)
    query_norm = query_arr / (np.linalg.norm(query_arr) + 1e-10)
    emb_norms = embeddings / (np.linalg.norm(embeddings, axis=1, keepdims=True) + 1e-10)
    return emb_norms @ query_norm


class VectorCollection(ABC):
    """Abstract per-collection vector store operations."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def add(
        self,
        ids: List[str],
        documents: List[str],
        metadatas: List[Metadata],
        phrases: Optional[List[List[str]]] = None,
    ) -> None:
        """Insert new records; raises DuplicateIdError for an existing id."""

    @abstractmethod
    async def get(
        self, ids: Optional[List[str]] = None, limit: Optional[int] = None
    ) -> List[VectorRecord]:
        """Fetch records by id (unknown ids are omitted) or all records."""

    @abstractmethod
    async def update(
        self,
        ids: List[str],
        metadatas: List[Metadata],
        documents: Optional[List[str]] = None,
        phrases: Optional[List[List[str]]] = None,
    ) -> None:
        """Replace metadata (and optionally documents and phrases); raises NotFoundError."""

    @abstractmethod
    async def mutate(self, entity_id: str, fn: Callable[[Metadata], Metadata]) -> Metadata:
        """Atomic read-modify-write of one record's metadata."""

    @abstractmethod
    async def query(
        self,
        query_texts: List[str],
        n_results: int = 10,
        where: Optional[Where] = None,
    ) -> QueryResult:
        """Nearest records per query text, closest first."""

    @abstractmethod
    async def count(self) -> int:
        """Number of records."""

    async def peek(self, limit: int = 10) -> List[VectorRecord]:
        return await self.get(limit=limit)


class InMemoryVectorCollection(VectorCollection):
    """
    Brute-force numpy index guarded by a re-entrant lock.

    Embedding runs outside the lock; record writes run inside it, so writes
    to different ids never interfere and writes to one id serialize with the
    last write winning.
    """

    def __init__(
        self,
        name: str,
        embedder: BaseEmbeddingProvider,
        lexical_matching: bool = True,
    ):
        super().__init__(name)
        self.embedder = embedder
        self.lexical_matching = lexical_matching
        self._records: Dict[str, VectorRecord] = {}
        self._seq = 0
        self._lock = threading.RLock()

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        vectors = await self.embedder.embed(texts)
        if len(vectors) != len(texts):
            raise StoreUnavailableError(
                f"Embedder returned {len(vectors)} vectors for {len(texts)} texts",
                collection=self.name,
            )
        return vectors

    def _check_new(self, ids: List[str]) -> None:
        seen = set()
        for entity_id in ids:
            if entity_id in self._records or entity_id in seen:
                raise DuplicateIdError(self.name, entity_id)
            seen.add(entity_id)

    async def add(
        self,
        ids: List[str],
        documents: List[str],
        metadatas: List[Metadata],
        phrases: Optional[List[List[str]]] = None,
    ) -> None:
        if not (len(ids) == len(documents) == len(metadatas)):
            raise ValueError("ids, documents and metadatas must have equal length")
        if phrases is None:
            phrases = [[] for _ in ids]
        elif len(phrases) != len(ids):
            raise ValueError("ids and phrases must have equal length")
        for entity_id in ids:
            validate_id(entity_id)

        with self._lock:
            self._check_new(ids)

        embeddings = await self._embed(documents)

        with self._lock:
            # an add for the same id may have landed while embedding
            self._check_new(ids)
            for entity_id, document, metadata, embedding, key_phrases in zip(
                ids, documents, metadatas, embeddings, phrases
            ):
                self._seq += 1
                self._records[entity_id] = VectorRecord(
                    id=entity_id,
                    document=document,
                    metadata=dict(metadata),
                    embedding=list(embedding),
                    seq=self._seq,
                    tokens=frozenset(tokenize(document)),
                    phrases=list(key_phrases),
                    phrase_tokens=_phrase_tokens(key_phrases),
                )

        logger.debug(f"{self.name}: added {len(ids)} record(s)")

    async def get(
        self, ids: Optional[List[str]] = None, limit: Optional[int] = None
    ) -> List[VectorRecord]:
        with self._lock:
            if ids is None:
                records = sorted(self._records.values(), key=lambda r: r.seq)
            else:
                records = [self._records[i] for i in ids if i in self._records]
            if limit is not None:
                records = records[:limit]
            return [
                VectorRecord(
                    id=r.id,
                    document=r.document,
                    metadata=dict(r.metadata),
                    embedding=r.embedding,
                    seq=r.seq,
                    tokens=r.tokens,
                    phrases=list(r.phrases),
                    phrase_tokens=r.phrase_tokens,
                )
                for r in records
            ]

    async def update(
        self,
        ids: List[str],
        metadatas: List[Metadata],
        documents: Optional[List[str]] = None,
        phrases: Optional[List[List[str]]] = None,
    ) -> None:
        if len(ids) != len(metadatas) or (documents is not None and len(documents) != len(ids)):
            raise ValueError("ids, metadatas and documents must have equal length")
        if phrases is not None and len(phrases) != len(ids):
            raise ValueError("ids and phrases must have equal length")

        with self._lock:
            for entity_id in ids:
                if entity_id not in self._records:
                    raise NotFoundError(self.name, entity_id)

        embeddings = await self._embed(documents) if documents is not None else None

        with self._lock:
            for index, entity_id in enumerate(ids):
                record = self._records.get(entity_id)
                if record is None:
                    raise NotFoundError(self.name, entity_id)
                record.metadata = dict(metadatas[index])
                if documents is not None and embeddings is not None:
                    record.document = documents[index]
                    record.embedding = list(embeddings[index])
                    record.tokens = frozenset(tokenize(documents[index]))
                if phrases is not None:
                    record.phrases = list(phrases[index])
                    record.phrase_tokens = _phrase_tokens(phrases[index])

    async def mutate(self, entity_id: str, fn: Callable[[Metadata], Metadata]) -> Metadata:
        with self._lock:
            record = self._records.get(entity_id)
            if record is None:
                raise NotFoundError(self.name, entity_id)
            record.metadata = dict(fn(dict(record.metadata)))
            return dict(record.metadata)

    async def query(
        self,
        query_texts: List[str],
        n_results: int = 10,
        where: Optional[Where] = None,
    ) -> QueryResult:
        result = QueryResult()
        if not query_texts:
            return result

        query_embeddings = await self._embed(query_texts)

        with self._lock:
            candidates = [r for r in self._records.values() if matches_where(r.metadata, where)]

        if not candidates or n_results <= 0:
            for _ in query_texts:
                result.ids.append([])
                result.documents.append([])
                result.metadatas.append([])
                result.distances.append([])
            return result

        matrix = np.asarray([r.embedding for r in candidates], dtype=np.float64)

        for text, query_embedding in zip(query_texts, query_embeddings):
            cosines = cosine_similarity_batch(query_embedding, matrix)
            query_tokens = tokenize(text) if self.lexical_matching else []

            scored = []
            for record, cosine in zip(candidates, cosines.tolist()):
                similarity = cosine
                if self.lexical_matching:
                    similarity = max(cosine, lexical_score(query_tokens, record))
                scored.append((similarity, cosine, record))

            scored.sort(key=lambda item: (-item[0], -item[1], item[2].seq))
            top = scored[:n_results]

            result.ids.append([r.id for _, _, r in top])
            result.documents.append([r.document for _, _, r in top])
            result.metadatas.append([dict(r.metadata) for _, _, r in top])
            result.distances.append([float(np.clip(1.0 - s, 0.0, 2.0)) for s, _, _ in top])

        return result

    async def count(self) -> int:
        with self._lock:
            return len(self._records)

    def to_state(self) -> Dict[str, Any]:
        """Serializable snapshot of the collection."""
        with self._lock:
            return {
                "name": self.name,
                "records": [
                    {
                        "id": r.id,
                        "document": r.document,
                        "metadata": r.metadata,
                        "embedding": r.embedding,
                        "phrases": r.phrases,
                    }
                    for r in sorted(self._records.values(), key=lambda r: r.seq)
                ],
            }

    def restore_state(self, state: Dict[str, Any]) -> None:
        with self._lock:
            self._records.clear()
            self._seq = 0
            for item in state.get("records", []):
                self._seq += 1
                self._records[item["id"]] = VectorRecord(
                    id=item["id"],
                    document=item["document"],
                    metadata=dict(item.get("metadata", {})),
                    embedding=list(item.get("embedding", [])),
                    seq=self._seq,
                    tokens=frozenset(tokenize(item["document"])),
                    phrases=list(item.get("phrases", [])),
                    phrase_tokens=_phrase_tokens(item.get("phrases", [])),
                )


class VectorStoreClient:
    """Owns the named collections and their optional JSON snapshots."""

    def __init__(
        self,
        embedder: BaseEmbeddingProvider,
        persist_directory: Optional[Path] = None,
        lexical_matching: bool = True,
    ):
        self.embedder = embedder
        self.persist_directory = Path(persist_directory) if persist_directory else None
        self.lexical_matching = lexical_matching
        self._collections: Dict[str, InMemoryVectorCollection] = {}
        self._lock = threading.RLock()

    def _snapshot_path(self, name: str) -> Optional[Path]:
        if self.persist_directory is None:
            return None
        return self.persist_directory / f"{name}.json"

    def get_or_create_collection(self, name: str) -> InMemoryVectorCollection:
        with self._lock:
            collection = self._collections.get(name)
            if collection is not None:
                return collection

            collection = InMemoryVectorCollection(
                name, self.embedder, lexical_matching=self.lexical_matching
            )
            path = self._snapshot_path(name)
            if path is not None and path.exists():
                try:
                    collection.restore_state(json.loads(path.read_text(encoding="utf-8")))
                except (OSError, ValueError) as e:
                    raise StoreUnavailableError(
                        f"Cannot load snapshot {path}: {e}", collection=name
                    ) from e
                logger.info(f"Loaded collection '{name}' from {path}")

            self._collections[name] = collection
            return collection

    def delete_collection(self, name: str) -> None:
        with self._lock:
            self._collections.pop(name, None)
            path = self._snapshot_path(name)
            if path is not None and path.exists():
                path.unlink()

    def list_collections(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    def persist(self) -> List[Path]:
        """Write every collection to ``<persist_directory>/<name>.json``."""
        if self.persist_directory is None:
            return []

        written = []
        try:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            with self._lock:
                collections = list(self._collections.values())
            for collection in collections:
                path = self.persist_directory / f"{collection.name}.json"
                path.write_text(json.dumps(collection.to_state()), encoding="utf-8")
                written.append(path)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot persist collections: {e}") from e

        logger.info(f"Persisted {len(written)} collection(s) to {self.persist_directory}")
        return written


__all__ = [
    "VectorRecord",
    "QueryResult",
    "VectorCollection",
    "InMemoryVectorCollection",
    "VectorStoreClient",
    "build_where",
    "matches_where",
    "lexical_coverage",
    "lexical_dice",
    "lexical_score",
    "cosine_similarity_batch",
]

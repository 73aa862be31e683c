"""
Knowledge Base Error Hierarchy

Typed failures raised by the action knowledge base:
- KnowledgeBaseError: base for all knowledge-base failures
- NotFoundError: an id referenced by get/update/enrich/expand does not exist
- DuplicateIdError: raw store add on an existing id (converted at call sites)
- EmbeddingUnavailableError: embedding service failure (handled by the provider)
- StoreUnavailableError: vector store backend cannot be reached
- InvalidIdError: malformed entity id

Queries never raise for "no match"; they return a result with found=False.
"""

from typing import Any, Dict, Optional


class KnowledgeBaseError(Exception):
    """Base exception for knowledge base operations."""

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            **({"context": self.context} if self.context else {}),
        }


class NotFoundError(KnowledgeBaseError):
    """Entity id does not exist in the collection."""

    def __init__(self, collection: str, entity_id: str):
        super().__init__(
            f"{collection}: '{entity_id}' not found",
            context={"collection": collection, "id": entity_id},
        )
        self.collection = collection
        self.entity_id = entity_id


class DuplicateIdError(KnowledgeBaseError):
    """Entity id already exists in the collection."""

    def __init__(self, collection: str, entity_id: str):
        super().__init__(
            f"{collection}: '{entity_id}' already exists",
            recoverable=True,
            context={"collection": collection, "id": entity_id},
        )
        self.collection = collection
        self.entity_id = entity_id


class EmbeddingUnavailableError(KnowledgeBaseError):
    """Embedding service could not produce vectors."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class StoreUnavailableError(KnowledgeBaseError):
    """Vector store backend failed or is unreachable."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(
            message,
            recoverable=True,
            context={"collection": collection} if collection else None,
        )
        self.collection = collection


class InvalidIdError(KnowledgeBaseError):
    """Entity id is empty or not a string."""

    def __init__(self, entity_id: Any):
        super().__init__(f"Invalid entity id: {entity_id!r}")


def validate_id(entity_id: Any) -> str:
    """Return the id unchanged or raise InvalidIdError."""
    if not isinstance(entity_id, str) or not entity_id.strip():
        raise InvalidIdError(entity_id)
    return entity_id


__all__ = [
    "KnowledgeBaseError",
    "NotFoundError",
    "DuplicateIdError",
    "EmbeddingUnavailableError",
    "StoreUnavailableError",
    "InvalidIdError",
    "validate_id",
]

"""
Embedding Provider Abstraction Layer

Turns text into fixed-length vectors for the knowledge base collections:
- Remote provider calling an OpenAI-compatible /embeddings endpoint
- Deterministic hash-based fallback used whenever the remote path fails

The provider contract is that embed() never raises: any error, timeout or
missing credential degrades to the fallback vectors.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp
import numpy as np
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from action_kb.core.errors import EmbeddingUnavailableError

FALLBACK_DIMENSION = 384


class EmbeddingConfig(BaseModel):
    """Configuration for the embedding service."""

    base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of an OpenAI-compatible API"
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key; the fallback embedding is used when absent"
    )
    model: str = Field(
        default="openai/text-embedding-3-small",
        description="Embedding model name"
    )
    dimension: int = Field(
        default=FALLBACK_DIMENSION,
        gt=0,
        description="Vector dimension shared by remote and fallback embeddings"
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries after the first failed request"
    )
    retry_backoff: float = Field(
        default=0.5,
        ge=0,
        description="Exponential backoff base in seconds"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url has no trailing slash."""
        return v.rstrip("/")

    @classmethod
    def from_env(cls) -> "EmbeddingConfig":
        """Load configuration from environment variables."""
        api_key = os.getenv("EMBEDDING_API_KEY")
        if not api_key:
            raw = os.getenv("OPENROUTER_API_KEYS") or os.getenv("OPENROUTER_API_KEY") or ""
            candidates = [k.strip() for k in raw.replace(";", ",").replace("\n", ",").split(",")]
            api_key = next((k for k in candidates if k), None)

        return cls(
            base_url=os.getenv("EMBEDDING_BASE_URL", "https://openrouter.ai/api/v1"),
            api_key=api_key,
            model=os.getenv("EMBEDDING_MODEL", "openai/text-embedding-3-small"),
            dimension=int(os.getenv("EMBEDDING_DIMENSION", str(FALLBACK_DIMENSION))),
            timeout=float(os.getenv("EMBEDDING_TIMEOUT", "30")),
            max_retries=int(os.getenv("EMBEDDING_MAX_RETRIES", "2")),
        )


def fallback_embedding(text: str, dimension: int = FALLBACK_DIMENSION) -> List[float]:
    """
    Deterministic character-position hash embedding.

    Each character at position i with code point c adds c/255 to slot
    (i*31 + c) mod dimension; the result is L2-normalized (divided by 1 when
    the norm is zero). Identical text always yields identical vectors.
    """
    vector = np.zeros(dimension, dtype=np.float64)
    for i, char in enumerate(text.lower()):
        code = ord(char)
        vector[(i * 31 + code) % dimension] += code / 255

    norm = float(np.linalg.norm(vector)) or 1.0
    return (vector / norm).tolist()


def distance_to_confidence(distance: float) -> float:
    """Confidence in [0, 1] from a dissimilarity distance."""
    return float(min(1.0, max(0.0, 1.0 - distance)))


class BaseEmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    def __init__(self, config: EmbeddingConfig):
        self.config = config

    @property
    def dimension(self) -> int:
        return self.config.dimension

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed a batch of texts. Must not raise."""

    async def close(self) -> None:
        """Release network resources."""


class FallbackEmbeddingProvider(BaseEmbeddingProvider):
    """Offline provider producing only the deterministic hash embedding."""

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        super().__init__(config or EmbeddingConfig())

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return [fallback_embedding(text or "", self.dimension) for text in texts]


class OpenAICompatibleEmbeddingProvider(BaseEmbeddingProvider):
    """OpenAI-compatible embeddings client (OpenAI, OpenRouter, LiteLLM) with async support."""

    def __init__(self, config: EmbeddingConfig):
        super().__init__(config)
        self.session: Optional[aiohttp.ClientSession] = None
        logger.info(
            f"Initializing {self.__class__.__name__} with model={config.model}, "
            f"dimension={config.dimension}"
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def close(self) -> None:
        """Close aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    async def _request(self, texts: List[str]) -> List[List[float]]:
        """Single embeddings request; raises EmbeddingUnavailableError on bad responses."""
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "input": texts,
            "dimensions": self.config.dimension,
        }
        session = await self._get_session()
        async with session.post(
            f"{self.config.base_url}/embeddings",
            json=payload,
            headers=self._get_headers(),
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise EmbeddingUnavailableError(
                    f"Embedding API error: HTTP {response.status} - {error_text[:200]}"
                )
            data = await response.json()

        items = sorted(data.get("data", []), key=lambda item: item.get("index", 0))
        vectors = [item["embedding"] for item in items]
        if len(vectors) != len(texts):
            raise EmbeddingUnavailableError(
                f"Embedding API returned {len(vectors)} vectors for {len(texts)} texts"
            )
        if any(len(v) != self.dimension for v in vectors):
            raise EmbeddingUnavailableError(
                f"Embedding API returned vectors not of dimension {self.dimension}"
            )
        return vectors

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        if not self.config.api_key:
            return [fallback_embedding(text or "", self.dimension) for text in texts]

        error: Exception = EmbeddingUnavailableError("no attempt made")
        for attempt in range(self.config.max_retries + 1):
            try:
                return await self._request(texts)
            except Exception as e:  # timeouts, HTTP errors, malformed payloads
                error = e

            if attempt < self.config.max_retries:
                delay = self.config.retry_backoff * (2 ** attempt)
                logger.debug(
                    f"Embedding attempt {attempt + 1} failed ({error}), retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        logger.warning(f"Embedding generation failed, using fallback embedding: {error}")
        return [fallback_embedding(text or "", self.dimension) for text in texts]


def create_embedding_provider(config: Optional[EmbeddingConfig] = None) -> BaseEmbeddingProvider:
    """Create the remote provider when a key is configured, the fallback otherwise."""
    config = config or EmbeddingConfig.from_env()
    if config.api_key:
        return OpenAICompatibleEmbeddingProvider(config)
    logger.warning("Remote embeddings disabled - no API key found, using fallback embedding")
    return FallbackEmbeddingProvider(config)


__all__ = [
    "FALLBACK_DIMENSION",
    "EmbeddingConfig",
    "BaseEmbeddingProvider",
    "FallbackEmbeddingProvider",
    "OpenAICompatibleEmbeddingProvider",
    "create_embedding_provider",
    "distance_to_confidence",
    "fallback_embedding",
]

"""
Tests for the embedding providers.

Covers the deterministic fallback embedding, distance-to-confidence
conversion and the remote provider's degradation to the fallback.
"""

import asyncio

import aiohttp
import numpy as np
import pytest

from action_kb.core.embeddings import (
    FALLBACK_DIMENSION,
    EmbeddingConfig,
    FallbackEmbeddingProvider,
    OpenAICompatibleEmbeddingProvider,
    create_embedding_provider,
    distance_to_confidence,
    fallback_embedding,
)
from action_kb.core.errors import EmbeddingUnavailableError


class TestFallbackEmbedding:
    """Tests for the character-position hash embedding."""

    @pytest.mark.parametrize("text", ["click play", "Skip the intro", "x", "ünïcødé ✓"])
    def test_deterministic(self, text):
        assert fallback_embedding(text) == fallback_embedding(text)

    @pytest.mark.parametrize("text", ["click play", "wait_for_buffer_to_clear", "a" * 1000])
    def test_unit_norm(self, text):
        vector = np.asarray(fallback_embedding(text))
        assert vector.shape == (FALLBACK_DIMENSION,)
        assert abs(np.linalg.norm(vector) - 1.0) < 1e-6

    def test_empty_text_is_zero_vector(self):
        vector = fallback_embedding("")
        assert len(vector) == FALLBACK_DIMENSION
        assert all(v == 0.0 for v in vector)

    def test_single_character_slot(self):
        # "a" is code 97 at position 0 -> slot 97
        vector = fallback_embedding("a")
        assert vector[97] == pytest.approx(1.0)
        assert sum(abs(v) for v in vector) == pytest.approx(1.0)

    def test_position_changes_slot(self):
        # position 1 of "ba" -> (31 + 97) % 384 = 128
        vector = np.asarray(fallback_embedding("ba"))
        assert vector[128] > 0
        assert vector[98] > 0

    def test_lower_cases_input(self):
        assert fallback_embedding("Click PLAY") == fallback_embedding("click play")

    def test_custom_dimension(self):
        assert len(fallback_embedding("play", dimension=16)) == 16


class TestDistanceToConfidence:
    """Tests for confidence derivation."""

    def test_known_values(self):
        assert distance_to_confidence(0.0) == 1.0
        assert distance_to_confidence(0.25) == pytest.approx(0.75)
        assert distance_to_confidence(1.0) == 0.0
        assert distance_to_confidence(2.0) == 0.0

    def test_monotone_and_bounded(self):
        distances = np.linspace(-0.5, 2.5, 61)
        confidences = [distance_to_confidence(float(d)) for d in distances]
        assert all(0.0 <= c <= 1.0 for c in confidences)
        assert all(a >= b for a, b in zip(confidences, confidences[1:]))


class TestProviders:
    """Tests for provider selection and failure handling."""

    @pytest.mark.asyncio
    async def test_fallback_provider(self):
        provider = FallbackEmbeddingProvider()
        vectors = await provider.embed(["click play", "skip intro"])
        assert len(vectors) == 2
        assert vectors[0] == fallback_embedding("click play")

    def test_create_without_key_uses_fallback(self):
        provider = create_embedding_provider(EmbeddingConfig(api_key=None))
        assert isinstance(provider, FallbackEmbeddingProvider)

    def test_create_with_key_uses_remote(self):
        provider = create_embedding_provider(EmbeddingConfig(api_key="secret"))
        assert isinstance(provider, OpenAICompatibleEmbeddingProvider)

    @pytest.mark.asyncio
    async def test_remote_without_key_never_calls_api(self, monkeypatch):
        provider = OpenAICompatibleEmbeddingProvider(EmbeddingConfig(api_key=None))

        async def fail(texts):
            raise AssertionError("network used without a key")

        monkeypatch.setattr(provider, "_request", fail)
        assert await provider.embed(["tap play"]) == [fallback_embedding("tap play")]

    @pytest.mark.asyncio
    async def test_remote_failure_degrades_to_fallback(self, monkeypatch):
        provider = OpenAICompatibleEmbeddingProvider(
            EmbeddingConfig(api_key="secret", max_retries=1, retry_backoff=0)
        )
        calls = []

        async def broken(texts):
            calls.append(texts)
            raise aiohttp.ClientError("connection refused")

        monkeypatch.setattr(provider, "_request", broken)
        vectors = await provider.embed(["tap play"])

        assert vectors == [fallback_embedding("tap play")]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_degrades_to_fallback(self, monkeypatch):
        provider = OpenAICompatibleEmbeddingProvider(
            EmbeddingConfig(api_key="secret", max_retries=0)
        )

        async def malformed(texts):
            raise KeyError("embedding")

        monkeypatch.setattr(provider, "_request", malformed)
        assert await provider.embed(["x"]) == [fallback_embedding("x")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        EmbeddingUnavailableError("HTTP 503"),
        ValueError("bad json"),
    ])
    async def test_every_failure_is_retried_then_degrades(self, monkeypatch, error):
        provider = OpenAICompatibleEmbeddingProvider(
            EmbeddingConfig(api_key="secret", max_retries=2, retry_backoff=0)
        )
        calls = []

        async def failing(texts):
            calls.append(texts)
            raise error

        monkeypatch.setattr(provider, "_request", failing)

        assert await provider.embed(["x"]) == [fallback_embedding("x")]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_remote_success_passes_vectors_through(self, monkeypatch):
        provider = OpenAICompatibleEmbeddingProvider(
            EmbeddingConfig(api_key="secret", dimension=3)
        )

        async def ok(texts):
            return [[1.0, 0.0, 0.0] for _ in texts]

        monkeypatch.setattr(provider, "_request", ok)
        assert await provider.embed(["a", "b"]) == [[1.0, 0.0, 0.0], [1.0, 0.0, 0.0]]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        provider = OpenAICompatibleEmbeddingProvider(EmbeddingConfig(api_key="secret"))
        assert await provider.embed([]) == []

    def test_embedding_unavailable_is_recoverable(self):
        assert EmbeddingUnavailableError("down").recoverable is True


class TestEmbeddingConfig:
    """Tests for environment configuration."""

    def test_from_env_uses_first_openrouter_key(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEYS", " k1 , k2")
        assert EmbeddingConfig.from_env().api_key == "k1"

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEYS", "k1")
        monkeypatch.setenv("EMBEDDING_API_KEY", "primary")
        assert EmbeddingConfig.from_env().api_key == "primary"

    def test_no_key(self):
        assert EmbeddingConfig.from_env().api_key is None

    def test_base_url_trailing_slash_stripped(self):
        assert EmbeddingConfig(base_url="http://localhost:4000/v1/").base_url == (
            "http://localhost:4000/v1"
        )

"""
Tests for the typed knowledge stores.
"""

import pytest

from action_kb.core.errors import DuplicateIdError, InvalidIdError, NotFoundError
from action_kb.knowledge.store import KnowledgeStores
from action_kb.knowledge.vector_store import VectorStoreClient
from action_kb.models.actions import (
    AtomicAction,
    Brand,
    CompositeAction,
    CompositeStep,
    Platform,
)
from action_kb.models.results import Layer


@pytest.fixture
def stores(embedder):
    return KnowledgeStores(VectorStoreClient(embedder))


@pytest.fixture
def ctv_action():
    return AtomicAction(
        id="method_ctv_pplus_PlayerScreen_clickPlayButton",
        action_name="click_play_button",
        method_name="clickPlayButton",
        class_name="PlayerScreen",
        platform="ctv",
        brand="pplus",
        parameters=["int times"],
        keywords=["click", "play", "button", "click"],
        target_screen="player",
    )


class TestKnowledgeStore:
    """Tests for typed add/get/query/update."""

    @pytest.mark.asyncio
    async def test_round_trip_keeps_types(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        loaded = await stores.atomic.get(ctv_action.id)

        assert isinstance(loaded, AtomicAction)
        assert loaded.platform is Platform.CTV
        assert loaded.brand is Brand.PPLUS
        assert loaded.parameters == ["int times"]
        assert loaded.keywords == ["click", "play", "button"]
        assert loaded.created_at == ctv_action.created_at

    @pytest.mark.asyncio
    async def test_metadata_is_structured(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        record = (await stores.atomic.collection.get(ids=[ctv_action.id]))[0]
        assert record.metadata["keywords"] == ["click", "play", "button"]
        assert record.metadata["platform"] == "ctv"
        assert record.metadata["kind"] == "atomic_action"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, stores):
        with pytest.raises(NotFoundError) as exc_info:
            await stores.atomic.get("missing")
        assert exc_info.value.collection == "atomic_actions"
        assert await stores.atomic.find("missing") is None

    @pytest.mark.asyncio
    async def test_invalid_id(self, stores):
        with pytest.raises(InvalidIdError):
            await stores.atomic.get("")

    @pytest.mark.asyncio
    async def test_raw_add_duplicate_raises(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        with pytest.raises(DuplicateIdError):
            await stores.atomic.add(ctv_action)

    @pytest.mark.asyncio
    async def test_update_reindexes_document(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        changed = ctv_action.model_copy(update={"keywords": ["rewind"]})
        await stores.atomic.update(changed)

        hits = await stores.atomic.query("rewind", top_k=1)
        assert hits[0].entity.keywords == ["rewind"]
        assert hits[0].distance == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, stores, ctv_action):
        with pytest.raises(NotFoundError):
            await stores.atomic.update(ctv_action)

    @pytest.mark.asyncio
    async def test_query_hits_carry_confidence(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        hits = await stores.atomic.query("tap play", top_k=3)

        assert len(hits) == 1
        assert hits[0].entity.id == ctv_action.id
        assert hits[0].confidence == pytest.approx(1.0 - hits[0].distance)

    @pytest.mark.asyncio
    async def test_query_where_on_enum_field(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        assert await stores.atomic.query("play", where={"platform": {"$eq": "mobile"}}) == []
        assert len(await stores.atomic.query("play", where={"platform": Platform.CTV})) == 1

    @pytest.mark.asyncio
    async def test_add_many_and_get_many(self, stores):
        composites = [
            CompositeAction(id=f"c{i}", action_name=f"flow_{i}", steps=[CompositeStep(atomic_action="x")])
            for i in range(3)
        ]
        await stores.composite.add_many(composites)
        assert await stores.composite.count() == 3
        loaded = await stores.composite.get_many(["c2", "c0", "nope"])
        assert [c.id for c in loaded] == ["c2", "c0"]
        assert loaded[0].steps[0].atomic_action.phrase == "x"


class TestUsageIncrement:
    """Usage increments bump by one and move last_used_at strictly forward."""

    @pytest.mark.asyncio
    async def test_increment_usage(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)

        first = await stores.atomic.increment_usage(ctv_action.id)
        assert first.usage_count == 1
        assert first.last_used_at > ctv_action.created_at

        second = await stores.atomic.increment_usage(ctv_action.id)
        assert second.usage_count == 2
        assert second.last_used_at > first.last_used_at

    @pytest.mark.asyncio
    async def test_rapid_increments_stay_strictly_ordered(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        stamps = []
        for _ in range(25):
            stamps.append((await stores.atomic.increment_usage(ctv_action.id)).last_used_at)
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_increment_missing(self, stores):
        with pytest.raises(NotFoundError):
            await stores.patterns.increment_usage("pattern_missing")


class TestKnowledgeStores:
    """Tests for the grouped stores."""

    def test_layers(self, stores):
        assert stores.for_layer(Layer.ATOMIC) is stores.atomic
        assert stores.for_layer("user_terminology") is stores.terminology
        assert [s.name for s in stores] == [
            "atomic_actions", "composite_actions", "user_terminology", "learned_patterns",
        ]

    @pytest.mark.asyncio
    async def test_clear_all(self, stores, ctv_action):
        await stores.atomic.add(ctv_action)
        await stores.composite.add(CompositeAction(id="c1", action_name="flow"))

        await stores.clear_all()

        assert await stores.counts() == {
            "atomic_actions": 0,
            "composite_actions": 0,
            "user_terminology": 0,
            "learned_patterns": 0,
        }
        await stores.atomic.add(ctv_action)
        assert await stores.atomic.count() == 1

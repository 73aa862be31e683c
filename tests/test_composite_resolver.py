"""
Tests for composite action expansion.
"""

import pytest

from action_kb.core.errors import NotFoundError


@pytest.fixture
async def kb_with_composite(kb, play_button_action):
    await kb.add_atomic_action(play_button_action)
    await kb.add_composite_action({
        "id": "c1",
        "action_name": "play_video",
        "description": "Start playback",
        "prerequisites": ["logged_in"],
        "steps": [
            {"atomic_action": "click_play_button", "order": 2, "parameters": {"times": 1}},
            {"atomic_action": "wait_for_buffer_to_clear", "order": 1, "conditional": True},
        ],
    })
    return kb


class TestCompositeExpansion:
    """Tests for step resolution."""

    @pytest.mark.asyncio
    async def test_mapped_and_unmapped_steps(self, kb_with_composite):
        expansion = await kb_with_composite.expand_composite_action("c1")

        first, second = expansion.steps
        assert first.unmapped is False
        assert first.action.id == "a1"
        assert first.confidence > 0.4

        assert second.unmapped is True
        assert second.action is None
        assert second.phrase == "wait_for_buffer_to_clear"
        assert expansion.has_unmapped_steps is True

    @pytest.mark.asyncio
    async def test_list_order_is_execution_order(self, kb_with_composite):
        expansion = await kb_with_composite.expand_composite_action("c1")
        assert [s.phrase for s in expansion.steps] == [
            "click_play_button",
            "wait_for_buffer_to_clear",
        ]
        assert [s.order for s in expansion.steps] == [2, 1]

    @pytest.mark.asyncio
    async def test_step_details_carried(self, kb_with_composite):
        expansion = await kb_with_composite.expand_composite_action("c1")
        assert expansion.action_name == "play_video"
        assert expansion.prerequisites == ["logged_in"]
        assert expansion.steps[0].parameters == {"times": 1}
        assert expansion.steps[1].conditional is True

    @pytest.mark.asyncio
    async def test_expansion_counts_usage(self, kb_with_composite):
        await kb_with_composite.expand_composite_action("c1")
        await kb_with_composite.expand_composite_action("c1")

        composite = await kb_with_composite.get_composite_action("c1")
        assert composite.usage_count == 2
        assert composite.last_used_at is not None

    @pytest.mark.asyncio
    async def test_unknown_composite(self, kb):
        with pytest.raises(NotFoundError):
            await kb.expand_composite_action("nope")

    @pytest.mark.asyncio
    async def test_all_steps_mapped(self, kb, play_button_action):
        await kb.add_atomic_action(play_button_action)
        await kb.add_composite_action({
            "id": "c2",
            "action_name": "press_play",
            "steps": [{"atomic_action": "tap play"}],
        })
        expansion = await kb.expand_composite_action("c2")
        assert expansion.has_unmapped_steps is False
        assert expansion.model_dump()["has_unmapped_steps"] is False

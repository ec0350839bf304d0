"""Tests for giveaway creation, ending, rerolling and deletion."""

from unittest.mock import AsyncMock

import pytest

from giveawaybot.errors import (
    InsufficientEntries,
    InvalidDuration,
    InvalidWinnerCount,
    NotEnded,
    NotFound,
    NotificationFailed,
)
from giveawaybot.lifecycle import LifecycleController
from giveawaybot.models import GiveawayStatus

NOW = 1_700_000_000_000


async def create(controller, **overrides):
    values = dict(
        tenant_id="1",
        host_id="7",
        channel_id="10",
        prize="Nitro",
        winner_count=2,
        duration_ms=60_000,
        now_ms=NOW,
    )
    values.update(overrides)
    return await controller.create(**values)


async def join_all(entries, giveaway, user_ids):
    for user_id in user_ids:
        await entries.join(giveaway.tenant_id, giveaway.id, user_id, now_ms=NOW)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_publishes_then_persists(self, controller, gateway, store):
        giveaway = await create(controller)

        gateway.publish.assert_awaited_once()
        assert giveaway.id == "1001"
        assert giveaway.end_time == NOW + 60_000
        assert giveaway.created_at == NOW
        assert giveaway.status is GiveawayStatus.ACTIVE
        assert giveaway.participants == []
        assert giveaway.winners == []
        assert await store.get("1", "1001") == giveaway

    @pytest.mark.asyncio
    @pytest.mark.parametrize("winner_count", [0, 11, -1])
    async def test_invalid_winner_count(self, controller, gateway, winner_count):
        with pytest.raises(InvalidWinnerCount):
            await create(controller, winner_count=winner_count)
        gateway.publish.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("winner_count", [1, 10])
    async def test_winner_count_bounds_accepted(self, controller, winner_count):
        giveaway = await create(controller, winner_count=winner_count)
        assert giveaway.winner_count == winner_count

    @pytest.mark.asyncio
    async def test_duration_window_is_enforced(self, store, gateway):
        controller = LifecycleController(
            store, gateway, min_duration_ms=5 * 60 * 1000, max_duration_ms=30 * 86_400_000
        )
        with pytest.raises(InvalidDuration):
            await create(controller, duration_ms=60_000)
        with pytest.raises(InvalidDuration):
            await create(controller, duration_ms=31 * 86_400_000)
        gateway.publish.assert_not_called()
        assert await store.list_tenants() == []

    @pytest.mark.asyncio
    async def test_publish_failure_leaves_no_record(self, controller, gateway, store):
        gateway.publish = AsyncMock(side_effect=RuntimeError("missing permissions"))

        with pytest.raises(NotificationFailed):
            await create(controller)

        assert await store.list_tenants() == []


class TestEnd:
    @pytest.mark.asyncio
    async def test_end_selects_and_persists(self, controller, entries, store):
        giveaway = await create(controller)
        await join_all(entries, giveaway, ["a", "b", "c"])

        outcome = await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        assert outcome is not None
        assert len(outcome.winners) == 2
        assert set(outcome.winners) <= {"a", "b", "c"}
        stored = await store.get("1", giveaway.id)
        assert stored.status is GiveawayStatus.ENDED
        assert stored.ended_at == NOW + 60_000
        assert stored.winners == outcome.winners

    @pytest.mark.asyncio
    async def test_second_end_is_noop(self, controller, entries, store):
        giveaway = await create(controller)
        await join_all(entries, giveaway, ["a", "b", "c"])

        first = await controller.end("1", giveaway.id, now_ms=NOW + 60_000)
        second = await controller.end("1", giveaway.id, now_ms=NOW + 70_000)

        assert second is None
        stored = await store.get("1", giveaway.id)
        assert stored.winners == first.winners
        assert stored.ended_at == NOW + 60_000

    @pytest.mark.asyncio
    async def test_end_missing_is_noop(self, controller):
        assert await controller.end("1", "nope", now_ms=NOW) is None

    @pytest.mark.asyncio
    async def test_winners_capped_by_participants(self, controller, entries):
        giveaway = await create(controller, winner_count=3)
        await join_all(entries, giveaway, ["solo"])

        outcome = await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        assert outcome.winners == ["solo"]

    @pytest.mark.asyncio
    async def test_no_participants_ends_without_winners(self, controller, store):
        giveaway = await create(controller)

        outcome = await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        assert outcome.winners == []
        assert (await store.get("1", giveaway.id)).status is GiveawayStatus.ENDED

    @pytest.mark.asyncio
    async def test_end_does_not_notify(self, controller, entries, gateway):
        giveaway = await create(controller)
        await join_all(entries, giveaway, ["a"])

        await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        gateway.announce.assert_not_called()
        gateway.edit.assert_not_called()


class TestReroll:
    @pytest.mark.asyncio
    async def test_reroll_active_is_not_ended(self, controller, entries):
        giveaway = await create(controller)
        await join_all(entries, giveaway, ["a", "b"])

        with pytest.raises(NotEnded):
            await controller.reroll("1", giveaway.id, now_ms=NOW)

    @pytest.mark.asyncio
    async def test_reroll_missing(self, controller):
        with pytest.raises(NotFound):
            await controller.reroll("1", "nope", now_ms=NOW)

    @pytest.mark.asyncio
    async def test_reroll_needs_enough_entries(self, controller, entries):
        giveaway = await create(controller, winner_count=2)
        await join_all(entries, giveaway, ["a"])
        await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        with pytest.raises(InsufficientEntries):
            await controller.reroll("1", giveaway.id, now_ms=NOW + 70_000)

    @pytest.mark.asyncio
    async def test_reroll_draws_again(self, controller, entries, store):
        giveaway = await create(controller, winner_count=2)
        await join_all(entries, giveaway, ["a", "b", "c", "d"])
        await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        outcome = await controller.reroll("1", giveaway.id, now_ms=NOW + 70_000)

        assert len(outcome.winners) == 2
        assert set(outcome.winners) <= {"a", "b", "c", "d"}
        stored = await store.get("1", giveaway.id)
        assert stored.status is GiveawayStatus.REROLLED
        assert stored.rerolled_at == NOW + 70_000
        assert stored.ended_at == NOW + 60_000
        assert stored.winners == outcome.winners

    @pytest.mark.asyncio
    async def test_reroll_can_repeat(self, controller, entries, store):
        giveaway = await create(controller, winner_count=1)
        await join_all(entries, giveaway, ["a", "b"])
        await controller.end("1", giveaway.id, now_ms=NOW + 60_000)

        await controller.reroll("1", giveaway.id, now_ms=NOW + 70_000)
        outcome = await controller.reroll("1", giveaway.id, now_ms=NOW + 80_000)

        stored = await store.get("1", giveaway.id)
        assert stored.status is GiveawayStatus.REROLLED
        assert stored.rerolled_at == NOW + 80_000
        assert stored.winners == outcome.winners

    @pytest.mark.asyncio
    async def test_end_after_reroll_stays_rerolled(self, controller, entries, store):
        giveaway = await create(controller, winner_count=1)
        await join_all(entries, giveaway, ["a", "b"])
        await controller.end("1", giveaway.id, now_ms=NOW + 60_000)
        rerolled = await controller.reroll("1", giveaway.id, now_ms=NOW + 70_000)

        assert await controller.end("1", giveaway.id, now_ms=NOW + 80_000) is None
        stored = await store.get("1", giveaway.id)
        assert stored.status is GiveawayStatus.REROLLED
        assert stored.winners == rerolled.winners


class TestDeleteAndList:
    @pytest.mark.asyncio
    async def test_delete_any_status(self, controller, store):
        active = await create(controller)
        ended = await create(controller)
        await controller.end("1", ended.id, now_ms=NOW + 60_000)

        assert await controller.delete("1", active.id) is True
        assert await controller.delete("1", ended.id) is True
        assert await controller.delete("1", ended.id) is False
        assert await store.list_all("1") == []

    @pytest.mark.asyncio
    async def test_list_active(self, controller):
        later = await create(controller, duration_ms=120_000)
        sooner = await create(controller, duration_ms=60_000)
        finished = await create(controller)
        await controller.end("1", finished.id, now_ms=NOW + 1)
        await create(controller, tenant_id="2")

        active = await controller.list_active("1")

        assert [g.id for g in active] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_get(self, controller):
        giveaway = await create(controller)
        assert await controller.get("1", giveaway.id) == giveaway
        assert await controller.get("1", "missing") is None

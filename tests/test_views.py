"""Tests for the persistent join button."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from giveawaybot.errors import StoreUnavailable
from giveawaybot.views import JOIN_CUSTOM_ID, GiveawayView


def make_interaction(message_id, user_id="42", guild_id=1):
    interaction = MagicMock()
    interaction.guild = MagicMock(id=guild_id)
    interaction.message = MagicMock(id=message_id)
    interaction.user = MagicMock(id=user_id)
    interaction.response.send_message = AsyncMock()
    return interaction


async def create(controller):
    return await controller.create(
        tenant_id="1",
        host_id="7",
        channel_id="10",
        prize="Nitro",
        winner_count=1,
        duration_ms=60_000,
    )


class TestGiveawayView:
    @pytest.mark.asyncio
    async def test_button_is_persistent(self, entries, notifier):
        view = GiveawayView(entries, notifier)

        assert view.timeout is None
        assert [item.custom_id for item in view.children] == [JOIN_CUSTOM_ID]
        assert view.is_persistent()

    @pytest.mark.asyncio
    async def test_join_replies_and_refreshes(self, controller, entries, notifier, gateway, store):
        giveaway = await create(controller)
        view = GiveawayView(entries, notifier)
        interaction = make_interaction(int(giveaway.id))

        await view.join_callback(interaction)

        message = interaction.response.send_message.await_args.args[0]
        assert "1 entries" in message
        assert (await store.get("1", giveaway.id)).participants == ["42"]
        gateway.edit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_join_is_rejected(self, controller, entries, notifier):
        giveaway = await create(controller)
        view = GiveawayView(entries, notifier)

        await view.join_callback(make_interaction(int(giveaway.id)))
        interaction = make_interaction(int(giveaway.id))
        await view.join_callback(interaction)

        message = interaction.response.send_message.await_args.args[0]
        assert "already entered" in message

    @pytest.mark.asyncio
    async def test_unknown_message(self, entries, notifier, gateway):
        view = GiveawayView(entries, notifier)
        interaction = make_interaction(999)

        await view.join_callback(interaction)

        message = interaction.response.send_message.await_args.args[0]
        assert "no longer available" in message
        gateway.edit.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_outage_is_reported(self, entries, notifier):
        entries.join = AsyncMock(side_effect=StoreUnavailable("offline"))
        view = GiveawayView(entries, notifier)
        interaction = make_interaction(1001)

        await view.join_callback(interaction)

        message = interaction.response.send_message.await_args.args[0]
        assert "temporarily unavailable" in message

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_fail_join(self, controller, entries, notifier, gateway):
        giveaway = await create(controller)
        gateway.edit = AsyncMock(side_effect=RuntimeError("Missing Access"))
        view = GiveawayView(entries, notifier)
        interaction = make_interaction(int(giveaway.id))

        await view.join_callback(interaction)

        assert "Good luck" in interaction.response.send_message.await_args.args[0]

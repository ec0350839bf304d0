from __future__ import annotations

import logging

import discord

from .entries import EntryManager
from .errors import NotificationFailed, StoreUnavailable
from .models import JoinStatus
from .notifications import GiveawayNotifier

log = logging.getLogger(__name__)

JOIN_CUSTOM_ID = "giveaway:join"

JOIN_MESSAGES = {
    JoinStatus.NOT_FOUND: "This giveaway is no longer available.",
    JoinStatus.ALREADY_CLOSED: "This giveaway has already ended.",
    JoinStatus.ALREADY_ENTERED: "You have already entered this giveaway! 🎉",
    JoinStatus.RATE_LIMITED: "You are joining giveaways too quickly, please wait a moment.",
}


class GiveawayView(discord.ui.View):
    """Persistent join button shared by every giveaway announcement.

    The giveaway is identified by the message the button is attached to.
    """

    def __init__(self, entries: EntryManager, notifier: GiveawayNotifier) -> None:
        super().__init__(timeout=None)
        self.entries = entries
        self.notifier = notifier

        join_button = discord.ui.Button(
            label="Join 🎉",
            style=discord.ButtonStyle.success,
            custom_id=JOIN_CUSTOM_ID,
        )
        join_button.callback = self.join_callback  # type: ignore[assignment]
        self.add_item(join_button)

    async def join_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or interaction.message is None:
            await interaction.response.send_message(
                "You can only join giveaways from a guild.", ephemeral=True
            )
            return
        tenant_id = str(interaction.guild.id)
        giveaway_id = str(interaction.message.id)
        try:
            result = await self.entries.join(tenant_id, giveaway_id, str(interaction.user.id))
        except StoreUnavailable:
            log.warning("Join for giveaway %s failed: store unavailable", giveaway_id)
            await interaction.response.send_message(
                "Giveaways are temporarily unavailable, please try again shortly.",
                ephemeral=True,
            )
            return

        if not result.accepted:
            await interaction.response.send_message(JOIN_MESSAGES[result.status], ephemeral=True)
            return

        await interaction.response.send_message(
            f"You're in! Good luck! There are now {result.total_entries} entries.",
            ephemeral=True,
        )
        try:
            giveaway = await self.entries.store.get(tenant_id, giveaway_id)
            if giveaway is not None:
                await self.notifier.refresh(giveaway)
        except (StoreUnavailable, NotificationFailed) as exc:
            log.debug("Could not refresh entry count for giveaway %s: %s", giveaway_id, exc)

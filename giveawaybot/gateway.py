"""Messaging gateway used to publish and update giveaway announcements."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import discord

from .errors import NotificationFailed
from .models import Giveaway, GiveawayStatus
from .timeutils import to_datetime

log = logging.getLogger(__name__)

STATUS_LABELS = {
    GiveawayStatus.ACTIVE: "Active",
    GiveawayStatus.ENDED: "Finished",
    GiveawayStatus.REROLLED: "Rerolled",
}


class MessagingGateway(Protocol):
    async def publish(self, channel_id: str, giveaway: Giveaway) -> str: ...

    async def edit(self, channel_id: str, artifact_id: str, giveaway: Giveaway) -> None: ...

    async def fetch(self, channel_id: str, artifact_id: str) -> Optional[object]: ...

    async def announce(self, channel_id: str, content: str) -> None: ...


def mention_list(user_ids) -> str:
    return ", ".join(f"<@{user_id}>" for user_id in user_ids)


def build_embed(giveaway: Giveaway) -> discord.Embed:
    status = STATUS_LABELS[giveaway.status]
    embed = discord.Embed(
        title=giveaway.prize or "Giveaway",
        description=f"Hosted by <@{giveaway.host_id}>" if giveaway.host_id else None,
        color=discord.Color.blue() if giveaway.is_active else discord.Color.dark_gray(),
        timestamp=to_datetime(giveaway.end_time),
    )
    embed.add_field(name="Winners", value=str(giveaway.winner_count), inline=True)
    embed.add_field(name="Entries", value=str(len(giveaway.participants)), inline=True)
    embed.add_field(name="Status", value=status, inline=True)
    if not giveaway.is_active:
        embed.add_field(
            name="Winner(s)",
            value=mention_list(giveaway.winners) or "No valid entries!",
            inline=False,
        )
    if giveaway.id:
        embed.set_footer(text=f"Giveaway ID: {giveaway.id} | Ends")
    else:
        embed.set_footer(text="Ends")
    return embed


class DiscordGateway:
    """discord.py implementation of :class:`MessagingGateway`."""

    def __init__(self, bot: discord.Client, view: Optional[discord.ui.View] = None) -> None:
        self.bot = bot
        self.view = view

    async def publish(self, channel_id: str, giveaway: Giveaway) -> str:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            raise NotificationFailed(f"Channel {channel_id} is not available.")
        kwargs = {"embed": build_embed(giveaway)}
        if self.view is not None:
            kwargs["view"] = self.view
        message = await channel.send(**kwargs)
        return str(message.id)

    async def edit(self, channel_id: str, artifact_id: str, giveaway: Giveaway) -> None:
        message = await self.fetch(channel_id, artifact_id)
        if message is None:
            raise NotificationFailed(
                f"Announcement {artifact_id} in channel {channel_id} is not available."
            )
        view = self.view if giveaway.is_active else None
        await message.edit(embed=build_embed(giveaway), view=view)

    async def fetch(self, channel_id: str, artifact_id: str) -> Optional[discord.Message]:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(int(artifact_id))
        except (discord.NotFound, discord.Forbidden, discord.HTTPException, ValueError):
            return None

    async def announce(self, channel_id: str, content: str) -> None:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            raise NotificationFailed(f"Channel {channel_id} is not available.")
        await channel.send(content)

    async def _fetch_text_channel(
        self, channel_id: str
    ) -> Optional[discord.abc.Messageable]:
        try:
            channel_key = int(channel_id)
        except (TypeError, ValueError):
            log.warning("Invalid channel id %r", channel_id)
            return None
        channel = self.bot.get_channel(channel_key)
        if isinstance(channel, (discord.TextChannel, discord.Thread)):
            return channel
        try:
            fetched = await self.bot.fetch_channel(channel_key)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, (discord.TextChannel, discord.Thread)) else None

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .errors import NotificationFailed
from .gateway import MessagingGateway, mention_list
from .models import Giveaway

log = logging.getLogger(__name__)


class GiveawayNotifier:
    """Announces giveaway outcomes through the gateway.

    Each gateway call is bounded by ``timeout`` seconds. A failed update of
    the announcement is logged and the winner message is still posted; a
    failed post is raised as :class:`NotificationFailed`. Stored state is
    never touched here.

    When ``logger_channel_id`` is set, lifecycle events are also written to
    that channel. Those posts never raise.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        *,
        timeout: float = 10.0,
        logger_channel_id: Optional[int] = None,
    ) -> None:
        self.gateway = gateway
        self.timeout = timeout
        self.logger_channel_id = logger_channel_id

    async def giveaway_created(self, giveaway: Giveaway) -> None:
        await self.log_event(
            f"Giveaway `{giveaway.id}` for **{giveaway.prize}** created by "
            f"<@{giveaway.host_id}> in <#{giveaway.channel_id}>, "
            f"{giveaway.winner_count} winner(s), ends <t:{giveaway.end_time // 1000}:R>.",
            tenant_id=giveaway.tenant_id,
        )

    async def giveaway_ended(self, giveaway: Giveaway) -> None:
        if giveaway.winners:
            content = (
                f"🎉 Congratulations {mention_list(giveaway.winners)}! "
                f"You won **{giveaway.prize or 'the giveaway'}**!"
            )
        else:
            content = f"Giveaway **{giveaway.prize or giveaway.id}** ended without any valid entries."
        await self._refresh_quietly(giveaway)
        try:
            await self._announce(giveaway, content)
        finally:
            await self.log_event(
                f"Giveaway `{giveaway.id}` for **{giveaway.prize}** ended with "
                f"{len(giveaway.participants)} entries. "
                f"Winner(s): {mention_list(giveaway.winners) or 'none'}.",
                tenant_id=giveaway.tenant_id,
            )

    async def giveaway_rerolled(self, giveaway: Giveaway) -> None:
        content = (
            f"🎲 Giveaway **{giveaway.prize or giveaway.id}** was rerolled. "
            f"New winner(s): {mention_list(giveaway.winners)}!"
        )
        await self._refresh_quietly(giveaway)
        try:
            await self._announce(giveaway, content)
        finally:
            await self.log_event(
                f"Giveaway `{giveaway.id}` for **{giveaway.prize}** rerolled. "
                f"New winner(s): {mention_list(giveaway.winners)}.",
                tenant_id=giveaway.tenant_id,
            )

    async def giveaway_deleted(self, tenant_id: str, giveaway_id: str, actor_id: str) -> None:
        await self.log_event(
            f"Giveaway `{giveaway_id}` deleted by <@{actor_id}>.", tenant_id=tenant_id
        )

    async def refresh(self, giveaway: Giveaway) -> None:
        """Re-render the announcement, e.g. after the entry count changed."""
        await self._update_display(giveaway)

    async def log_event(self, message: str, *, tenant_id: Optional[str] = None) -> None:
        if not self.logger_channel_id:
            return
        prefix = "[Giveaway]" if tenant_id is None else f"[Giveaway] guild {tenant_id}:"
        try:
            await self._call(
                self.gateway.announce(str(self.logger_channel_id), f"{prefix} {message}"),
                f"log message to channel {self.logger_channel_id}",
            )
        except NotificationFailed as exc:
            log.warning("Failed to send log message: %s", exc)

    async def _announce(self, giveaway: Giveaway, content: str) -> None:
        await self._call(
            self.gateway.announce(giveaway.channel_id, content),
            f"announce for giveaway {giveaway.id}",
        )

    async def _refresh_quietly(self, giveaway: Giveaway) -> None:
        try:
            await self._update_display(giveaway)
        except NotificationFailed as exc:
            log.warning("Could not update announcement for giveaway %s: %s", giveaway.id, exc)

    async def _update_display(self, giveaway: Giveaway) -> None:
        message = await self._call(
            self.gateway.fetch(giveaway.channel_id, giveaway.id),
            f"fetch for giveaway {giveaway.id}",
        )
        if message is None:
            log.info(
                "Announcement for giveaway %s is gone; skipping display update.", giveaway.id
            )
            return
        await self._call(
            self.gateway.edit(giveaway.channel_id, giveaway.id, giveaway),
            f"edit for giveaway {giveaway.id}",
        )

    async def _call(self, awaitable, action: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except NotificationFailed:
            raise
        except asyncio.TimeoutError as exc:
            raise NotificationFailed(f"Timed out during {action}") from exc
        except Exception as exc:
            raise NotificationFailed(f"{action} failed: {exc}") from exc

from __future__ import annotations

import logging
import random
from typing import List, Optional

from .errors import (
    InsufficientEntries,
    InvalidDuration,
    InvalidWinnerCount,
    NotEnded,
    NotFound,
    NotificationFailed,
)
from .gateway import MessagingGateway
from .models import (
    MAX_WINNERS,
    MIN_WINNERS,
    EndOutcome,
    Giveaway,
    GiveawayStatus,
    RerollOutcome,
)
from .selector import select_winners
from .storage import GiveawayStore
from .timeutils import format_duration, now_ms as current_ms

log = logging.getLogger(__name__)

DEFAULT_MIN_DURATION_MS = 5 * 60 * 1000
DEFAULT_MAX_DURATION_MS = 30 * 24 * 60 * 60 * 1000


class LifecycleController:
    """Owns giveaway state transitions: create, end, reroll and delete.

    Transitions reload the record under the tenant lock right before they
    write it, so a stale copy never overwrites a newer stored state and a
    second ``end`` on the same giveaway is a no-op.
    """

    def __init__(
        self,
        store: GiveawayStore,
        gateway: MessagingGateway,
        *,
        min_duration_ms: int = DEFAULT_MIN_DURATION_MS,
        max_duration_ms: int = DEFAULT_MAX_DURATION_MS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.min_duration_ms = min_duration_ms
        self.max_duration_ms = max_duration_ms
        self._rng = rng

    def validate(self, winner_count: int, duration_ms: int) -> None:
        if not MIN_WINNERS <= winner_count <= MAX_WINNERS:
            raise InvalidWinnerCount(
                f"Winner count must be between {MIN_WINNERS} and {MAX_WINNERS}."
            )
        if not self.min_duration_ms <= duration_ms <= self.max_duration_ms:
            raise InvalidDuration(
                f"Duration must be between {format_duration(self.min_duration_ms)} "
                f"and {format_duration(self.max_duration_ms)}."
            )

    async def create(
        self,
        tenant_id: str,
        host_id: str,
        channel_id: str,
        prize: str,
        winner_count: int,
        duration_ms: int,
        now_ms: Optional[int] = None,
    ) -> Giveaway:
        self.validate(winner_count, duration_ms)
        now = current_ms() if now_ms is None else now_ms
        giveaway = Giveaway(
            tenant_id=str(tenant_id),
            id="",
            channel_id=str(channel_id),
            host_id=str(host_id),
            prize=prize,
            winner_count=winner_count,
            end_time=now + duration_ms,
            created_at=now,
        )

        try:
            artifact_id = await self.gateway.publish(giveaway.channel_id, giveaway)
        except NotificationFailed:
            raise
        except Exception as exc:
            raise NotificationFailed(
                f"Could not publish giveaway in channel {channel_id}: {exc}"
            ) from exc
        giveaway.id = str(artifact_id)

        async with self.store.lock(giveaway.tenant_id):
            await self.store.upsert(giveaway.tenant_id, giveaway)

        log.info(
            "Giveaway %s for %r created in tenant %s, ends at %s",
            giveaway.id,
            prize,
            giveaway.tenant_id,
            giveaway.end_time,
        )
        return giveaway

    async def end(
        self, tenant_id: str, giveaway_id: str, now_ms: Optional[int] = None
    ) -> Optional[EndOutcome]:
        tenant_id, giveaway_id = str(tenant_id), str(giveaway_id)
        async with self.store.lock(tenant_id):
            giveaway = await self.store.get(tenant_id, giveaway_id)
            if giveaway is None:
                log.debug("Giveaway %s already removed from tenant %s", giveaway_id, tenant_id)
                return None
            if not giveaway.is_active:
                return None
            winners = select_winners(giveaway.participants, giveaway.winner_count, rng=self._rng)
            giveaway.winners = winners
            giveaway.status = GiveawayStatus.ENDED
            giveaway.ended_at = current_ms() if now_ms is None else now_ms
            await self.store.upsert(tenant_id, giveaway)

        log.info(
            "Giveaway %s in tenant %s ended with %d winner(s) from %d entries",
            giveaway_id,
            tenant_id,
            len(winners),
            len(giveaway.participants),
        )
        return EndOutcome(giveaway=giveaway, winners=list(winners))

    async def reroll(
        self, tenant_id: str, giveaway_id: str, now_ms: Optional[int] = None
    ) -> RerollOutcome:
        tenant_id, giveaway_id = str(tenant_id), str(giveaway_id)
        async with self.store.lock(tenant_id):
            giveaway = await self.store.get(tenant_id, giveaway_id)
            if giveaway is None:
                raise NotFound(f"Giveaway {giveaway_id} was not found.")
            if giveaway.is_active:
                raise NotEnded("This giveaway has not ended yet. Please end it first.")
            if len(giveaway.participants) < giveaway.winner_count:
                raise InsufficientEntries(
                    f"Need at least {giveaway.winner_count} entries to reroll, "
                    f"found {len(giveaway.participants)}."
                )
            winners = select_winners(giveaway.participants, giveaway.winner_count, rng=self._rng)
            giveaway.winners = winners
            giveaway.status = GiveawayStatus.REROLLED
            giveaway.rerolled_at = current_ms() if now_ms is None else now_ms
            await self.store.upsert(tenant_id, giveaway)

        log.info("Giveaway %s in tenant %s rerolled", giveaway_id, tenant_id)
        return RerollOutcome(giveaway=giveaway, winners=list(winners))

    async def delete(self, tenant_id: str, giveaway_id: str) -> bool:
        tenant_id, giveaway_id = str(tenant_id), str(giveaway_id)
        async with self.store.lock(tenant_id):
            removed = await self.store.remove(tenant_id, giveaway_id)
        if removed:
            log.info("Giveaway %s deleted from tenant %s", giveaway_id, tenant_id)
        return removed

    async def get(self, tenant_id: str, giveaway_id: str) -> Optional[Giveaway]:
        return await self.store.get(str(tenant_id), str(giveaway_id))

    async def list_active(self, tenant_id: str) -> List[Giveaway]:
        giveaways = await self.store.list_all(str(tenant_id))
        return sorted(
            (giveaway for giveaway in giveaways if giveaway.is_active),
            key=lambda giveaway: giveaway.end_time,
        )

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from .models import JoinResult, JoinStatus
from .storage import GiveawayStore
from .timeutils import now_ms as current_ms

log = logging.getLogger(__name__)


class EntryManager:
    """Records participant entries against active giveaways."""

    def __init__(
        self,
        store: GiveawayStore,
        *,
        cooldown_seconds: float = 3.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.cooldown_seconds = cooldown_seconds
        self._monotonic = monotonic
        self._last_entry: Dict[Tuple[str, str], float] = {}

    def _rate_limited(self, tenant_id: str, user_id: str) -> bool:
        if self.cooldown_seconds <= 0:
            return False
        now = self._monotonic()
        key = (tenant_id, user_id)
        last = self._last_entry.get(key)
        if last is not None and now - last < self.cooldown_seconds:
            return True
        self._last_entry[key] = now
        if len(self._last_entry) > 1024:
            cutoff = now - self.cooldown_seconds
            self._last_entry = {k: v for k, v in self._last_entry.items() if v >= cutoff}
        return False

    async def join(
        self,
        tenant_id: str,
        giveaway_id: str,
        user_id: str,
        now_ms: Optional[int] = None,
    ) -> JoinResult:
        """Enter ``user_id`` into a giveaway.

        Rejections are checked in order: missing giveaway, closed giveaway,
        existing entry. The cooldown only applies to a join that would be
        recorded, so a repeat click always reports ``ALREADY_ENTERED``.
        """
        tenant_id, giveaway_id, user_id = str(tenant_id), str(giveaway_id), str(user_id)
        async with self.store.lock(tenant_id):
            now = current_ms() if now_ms is None else now_ms
            giveaway = await self.store.get(tenant_id, giveaway_id)
            if giveaway is None:
                return JoinResult(JoinStatus.NOT_FOUND)
            total = len(giveaway.participants)
            if not giveaway.accepts_entries(now):
                return JoinResult(JoinStatus.ALREADY_CLOSED, total)
            if user_id in giveaway.participants:
                return JoinResult(JoinStatus.ALREADY_ENTERED, total)
            if self._rate_limited(tenant_id, user_id):
                log.debug("User %s rate limited in tenant %s", user_id, tenant_id)
                return JoinResult(JoinStatus.RATE_LIMITED, total)
            giveaway.add_participant(user_id)
            await self.store.upsert(tenant_id, giveaway)

        log.debug("User %s joined giveaway %s in tenant %s", user_id, giveaway_id, tenant_id)
        return JoinResult(JoinStatus.JOINED, len(giveaway.participants))

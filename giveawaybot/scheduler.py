from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from discord.ext import tasks

from .errors import NotificationFailed, StoreUnavailable
from .lifecycle import LifecycleController
from .models import EndOutcome, SweepReport
from .notifications import GiveawayNotifier
from .storage import GiveawayStore
from .timeutils import now_ms as current_ms

log = logging.getLogger(__name__)


class SweepScheduler:
    """Periodically ends every tenant's giveaways whose deadline has passed.

    One ``tasks.Loop`` drives the sweep. Each iteration runs the sweep in its
    own task, so a slow sweep does not hold back the next iteration and
    overlapping sweeps are possible. Overlap is safe because
    :meth:`LifecycleController.end` reloads the record and skips anything
    that is no longer active.
    """

    def __init__(
        self,
        store: GiveawayStore,
        controller: LifecycleController,
        notifier: GiveawayNotifier,
        *,
        interval_seconds: float = 15,
        buffer_ms: int = 5000,
        clock: Callable[[], int] = current_ms,
    ) -> None:
        self.store = store
        self.controller = controller
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.buffer_ms = buffer_ms
        self._clock = clock
        self._sweeps: Set[asyncio.Task] = set()
        self._loop = tasks.loop(seconds=interval_seconds)(self._tick)

    def start(self) -> None:
        if self._loop.is_running():
            return
        self._loop.start()
        log.info(
            "Giveaway sweep started (interval %ss, buffer %sms)",
            self.interval_seconds,
            self.buffer_ms,
        )

    async def stop(self) -> None:
        self._loop.cancel()
        pending = list(self._sweeps)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("Giveaway sweep stopped")

    def is_running(self) -> bool:
        return self._loop.is_running()

    async def _tick(self) -> None:
        task = asyncio.create_task(self._run_sweep())
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)

    async def _run_sweep(self) -> None:
        try:
            await self.sweep()
        except Exception:
            log.exception("Giveaway sweep failed")

    async def sweep(self, now_ms: Optional[int] = None) -> SweepReport:
        now = self._clock() if now_ms is None else now_ms
        report = SweepReport()
        try:
            tenants = await self.store.list_tenants()
        except StoreUnavailable as exc:
            log.warning("Skipping sweep, tenant list unavailable: %s", exc)
            report.failures += 1
            return report

        report.tenants = len(tenants)
        results = await asyncio.gather(
            *(self._sweep_tenant(tenant_id, now, report) for tenant_id in tenants),
            return_exceptions=True,
        )
        for tenant_id, result in zip(tenants, results):
            if isinstance(result, BaseException):
                report.failures += 1
                log.error(
                    "Sweep of tenant %s failed",
                    tenant_id,
                    exc_info=(type(result), result, result.__traceback__),
                )

        if report.ended or report.failures:
            log.info(
                "Sweep ended %d giveaway(s) across %d tenant(s) with %d failure(s)",
                len(report.ended),
                report.tenants,
                report.failures,
            )
        return report

    async def _sweep_tenant(self, tenant_id: str, now: int, report: SweepReport) -> None:
        try:
            giveaways = await self.store.list_all(tenant_id)
        except StoreUnavailable as exc:
            log.warning("Giveaways for tenant %s unavailable, retrying next sweep: %s", tenant_id, exc)
            report.failures += 1
            return

        due = [giveaway.id for giveaway in giveaways if giveaway.is_due(now, self.buffer_ms)]
        for giveaway_id in due:
            outcome = await self._end_one(tenant_id, giveaway_id, now, report)
            if outcome is not None:
                report.ended.append(giveaway_id)

    async def _end_one(
        self, tenant_id: str, giveaway_id: str, now: int, report: SweepReport
    ) -> Optional[EndOutcome]:
        try:
            outcome = await self.controller.end(tenant_id, giveaway_id, now)
        except StoreUnavailable as exc:
            log.warning(
                "Could not end giveaway %s in tenant %s, retrying next sweep: %s",
                giveaway_id,
                tenant_id,
                exc,
            )
            report.failures += 1
            return None
        except Exception:
            log.exception("Failed to end giveaway %s in tenant %s", giveaway_id, tenant_id)
            report.failures += 1
            return None
        if outcome is None:
            return None

        try:
            await self.notifier.giveaway_ended(outcome.giveaway)
        except NotificationFailed as exc:
            log.warning("Giveaway %s ended but announcement failed: %s", giveaway_id, exc)
        return outcome

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.errors import StoreError
from licensing.client import CheckStatus

from .registry import TrackedNameRegistry
from .service import TrackingService

log = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    checked: int = 0
    registered: int = 0
    not_registered: int = 0
    unknown: int = 0
    failed: int = 0
    skipped: int = 0
    removed: list[tuple[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "checked": self.checked,
            "registered": self.registered,
            "not_registered": self.not_registered,
            "unknown": self.unknown,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class NotificationScheduler:
    """
    Periodic re-verification of every tracked name.

    One sweep at a time: a tick that arrives while a sweep is running is
    dropped, not queued. Names inside a sweep are checked one after another;
    the registry is rate sensitive and each token serves a single query.
    """

    def __init__(
        self,
        registry: TrackedNameRegistry,
        service: TrackingService,
        *,
        interval_secs: int = 3600,
        first_delay_secs: int = 5,
    ) -> None:
        self._registry = registry
        self._service = service
        self.interval_secs = max(10, int(interval_secs))
        self.first_delay_secs = max(0, int(first_delay_secs))
        self._sweep_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.last_report: SweepReport | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    async def run_sweep(self) -> SweepReport | None:
        """Check every tracked name once. Returns None if a sweep is already running."""
        if self._sweep_lock.locked():
            log.warning("Sweep still in progress; skipping this tick.")
            return None
        async with self._sweep_lock:
            report = SweepReport(started_at=datetime.now(timezone.utc))
            try:
                entries = await self._registry.list_all()
            except StoreError:
                log.exception("Sweep aborted: cannot read tracked names")
                report.finished_at = datetime.now(timezone.utc)
                self.last_report = report
                return report

            log.info("=== Sweep started: %d tracked name(s) ===", len(entries))
            for external_id, tracked in entries:
                try:
                    status = await self._service.recheck(external_id, tracked)
                except Exception:
                    report.failed += 1
                    log.exception("Sweep: re-check of %r for %s failed", tracked.value, external_id)
                    continue
                if status is None:
                    report.skipped += 1
                    continue
                report.checked += 1
                if tracked.verified:
                    report.removed.append((external_id, tracked.value))
                if status is CheckStatus.REGISTERED:
                    report.registered += 1
                elif status is CheckStatus.NOT_REGISTERED:
                    report.not_registered += 1
                else:
                    report.unknown += 1

            report.finished_at = datetime.now(timezone.utc)
            self.last_report = report
            log.info(
                "=== Sweep finished: checked=%s registered=%s not_registered=%s unknown=%s failed=%s skipped=%s ===",
                report.checked,
                report.registered,
                report.not_registered,
                report.unknown,
                report.failed,
                report.skipped,
            )
            return report

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.first_delay_secs
        while not self._stopping.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
            t0 = time.monotonic()
            try:
                await self.run_sweep()
            except Exception:
                log.exception("Sweep crashed; continuing with the next interval")
            elapsed = time.monotonic() - t0
            next_tick += self.interval_secs
            # Ticks that fell inside a long sweep are skipped, not replayed.
            while next_tick <= loop.time():
                next_tick += self.interval_secs
            if elapsed > self.interval_secs:
                log.warning(
                    "Sweep took %.1fs, longer than the %ss interval; missed ticks skipped.",
                    elapsed,
                    self.interval_secs,
                )

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="registration-sweep")
        log.info(
            "Registration sweep scheduled: every %ss (first=%ss)",
            self.interval_secs,
            self.first_delay_secs,
        )

    async def stop(self) -> None:
        """Stop the timer; a sweep already running is allowed to finish."""
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
        log.info("Registration sweep stopped.")

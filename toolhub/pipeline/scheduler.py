"""
Cleanup scheduler.

Two independent mechanisms reclaim ephemeral storage:

- Timers: one per grant, keyed by name, held in a min-heap ordered by due
  time. ``run_due()`` fires everything whose time has come; a background
  task calls it whenever the earliest timer elapses.
- Sweep: a coarse periodic pass that deletes anything under uploads/,
  processed/ or downloads/ older than ``stale_after_seconds``. This is the
  backstop for timers lost to a restart.

Neither mechanism raises: each pass returns a CleanupReport with the
number of failures, and failures are logged.
"""

import asyncio
import heapq
import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from toolhub.core.logging_config import get_logger, short_id
from toolhub.pipeline.clock import Clock
from toolhub.pipeline.store import AREAS, LocalAssetStore

logger = get_logger(__name__)

# A timer action returns True when its cleanup succeeded.
CleanupAction = Callable[[], bool]


def loggable_key(key: str) -> str:
    """Timer key for log lines: grant:<id> with the id shortened."""
    kind, sep, ident = key.partition(":")
    return f"{kind}:{short_id(ident)}" if sep else short_id(key)


@dataclass
class CleanupReport:
    removed: int = 0
    failures: int = 0

    def __add__(self, other: "CleanupReport") -> "CleanupReport":
        return CleanupReport(self.removed + other.removed, self.failures + other.failures)


@dataclass(order=True)
class _Timer:
    due_at: float
    seq: int
    key: str = field(compare=False)
    action: CleanupAction = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class CleanupScheduler:
    """Per-key expiry timers plus a periodic stale-file sweep."""

    def __init__(
        self,
        store: LocalAssetStore,
        clock: Clock,
        sweep_interval_seconds: float = 300,
        stale_after_seconds: float = 1800,
    ):
        self.store = store
        self.clock = clock
        self.sweep_interval_seconds = sweep_interval_seconds
        self.stale_after_seconds = stale_after_seconds

        self._heap: List[_Timer] = []
        self._by_key: Dict[str, _Timer] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self._running = False

    # =========================================================================
    # Timers
    # =========================================================================

    def schedule(self, due_at: float, key: str, action: CleanupAction) -> None:
        """Register ``action`` to run at ``due_at``. Replaces a timer with the same key."""
        timer = _Timer(due_at, next(self._seq), key, action)
        with self._lock:
            previous = self._by_key.get(key)
            if previous is not None:
                previous.cancelled = True
            self._by_key[key] = timer
            heapq.heappush(self._heap, timer)
        self._wake()

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._by_key.pop(key, None)
            if timer is None:
                return False
            timer.cancelled = True
            return True

    def pending(self) -> int:
        with self._lock:
            return len(self._by_key)

    def next_due(self) -> Optional[float]:
        with self._lock:
            self._drop_cancelled_head()
            return self._heap[0].due_at if self._heap else None

    def run_due(self, now: Optional[float] = None) -> CleanupReport:
        """Fire every timer due at or before ``now``. Never raises."""
        now = self.clock.now() if now is None else now
        due: List[_Timer] = []
        with self._lock:
            while self._heap:
                self._drop_cancelled_head()
                if not self._heap or self._heap[0].due_at > now:
                    break
                timer = heapq.heappop(self._heap)
                self._by_key.pop(timer.key, None)
                due.append(timer)

        report = CleanupReport()
        for timer in due:
            try:
                ok = timer.action()
            except Exception as e:
                logger.warning(f"Cleanup timer '{loggable_key(timer.key)}' raised: {e}", exc_info=True)
                ok = False
            if ok:
                report.removed += 1
            else:
                report.failures += 1
        if due:
            logger.info(f"Cleanup timers fired: {report.removed} reclaimed, {report.failures} failed")
        return report

    def _drop_cancelled_head(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)

    # =========================================================================
    # Sweep
    # =========================================================================

    def sweep(self, now: Optional[float] = None) -> CleanupReport:
        """Delete entries older than ``stale_after_seconds`` in every area. Never raises."""
        now = self.clock.now() if now is None else now
        cutoff = now - self.stale_after_seconds
        report = CleanupReport()
        for area in AREAS:
            for entry in self.store.entries(area):
                try:
                    modified = entry.stat().st_mtime
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning(f"Sweep could not stat {self.store.describe(entry)}: {e}")
                    report.failures += 1
                    continue
                if modified > cutoff:
                    continue
                if self.store.delete(entry):
                    report.removed += 1
                else:
                    report.failures += 1
        if report.removed or report.failures:
            logger.info(f"Sweep removed {report.removed} stale entr(ies), {report.failures} failure(s)")
        return report

    # =========================================================================
    # Background tasks
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._running = True
        self._tasks = [
            asyncio.create_task(self._timer_loop(), name="toolhub-cleanup-timers"),
            asyncio.create_task(self._sweep_loop(), name="toolhub-cleanup-sweep"),
        ]
        logger.info(
            f"Cleanup scheduler started (sweep every {self.sweep_interval_seconds}s, "
            f"stale after {self.stale_after_seconds}s)"
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self._loop = None
        logger.info("Cleanup scheduler stopped")

    def _wake(self) -> None:
        loop, event = self._loop, self._wakeup
        if loop is None or event is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(event.set)

    async def _timer_loop(self) -> None:
        while self._running:
            due = self.next_due()
            timeout = None if due is None else max(0.0, due - self.clock.now())
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
            await asyncio.to_thread(self.run_due)

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval_seconds)
            await asyncio.to_thread(self.sweep)

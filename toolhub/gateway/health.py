"""
Health report for GET /health.

Three kinds of check run concurrently:

- storage: the storage root accepts writes
- cleanup: the scheduler task is alive; pending timers and live grants
- one per operation family: how many operations it registered

A check that raises is reported unhealthy with its error message; it
never fails the request.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Tuple

from toolhub.core.config import get
from toolhub.core.logging_config import get_logger
from toolhub.gateway.schemas import HealthStatus, ServiceHealth
from toolhub.pipeline.grants import DownloadGrantManager
from toolhub.pipeline.registry import OperationRegistry
from toolhub.pipeline.scheduler import CleanupScheduler
from toolhub.pipeline.store import AREAS, LocalAssetStore

logger = get_logger(__name__)

# Operation ids use "util." but the report spells the family out.
FAMILY_LABELS = {"util": "utility"}

Check = Callable[[], Awaitable[ServiceHealth]]


class HealthChecker:
    def __init__(
        self,
        store: LocalAssetStore,
        scheduler: CleanupScheduler,
        grants: DownloadGrantManager,
        registry: OperationRegistry,
    ):
        self.store = store
        self.scheduler = scheduler
        self.grants = grants
        self.registry = registry
        self.checks: List[Tuple[str, Check]] = [
            ("storage", self._storage),
            ("cleanup", self._cleanup),
        ]
        for family in registry.by_family():
            self.checks.append((FAMILY_LABELS.get(family, family), self._family_check(family)))

    async def check_all(self) -> HealthStatus:
        services = await asyncio.gather(*(self._timed(label, check) for label, check in self.checks))
        return HealthStatus(
            healthy=all(service.healthy for service in services),
            timestamp=datetime.now(timezone.utc),
            services=list(services),
            version=get("app", "version", fallback="1.0.0"),
        )

    async def _timed(self, label: str, check: Check) -> ServiceHealth:
        started = time.perf_counter()
        try:
            service = await check()
        except Exception as exc:
            logger.error(f"Health check '{label}' raised: {exc}")
            service = ServiceHealth(name=label, healthy=False, message=str(exc))
        service.name = label
        service.latency_ms = round((time.perf_counter() - started) * 1000, 3)
        return service

    async def _storage(self) -> ServiceHealth:
        writable = await asyncio.to_thread(self.store.is_writable)
        return ServiceHealth(
            name="storage",
            healthy=writable,
            message="Writable" if writable else "Storage root is not writable",
            details={"root": str(self.store.root), "areas": list(AREAS)},
        )

    async def _cleanup(self) -> ServiceHealth:
        alive = self.scheduler.running
        return ServiceHealth(
            name="cleanup",
            healthy=alive,
            message="Running" if alive else "Scheduler not running",
            details={"pending_timers": self.scheduler.pending(), "active_grants": len(self.grants)},
        )

    def _family_check(self, family: str) -> Check:
        async def check() -> ServiceHealth:
            operations = self.registry.by_family().get(family, [])
            return ServiceHealth(
                name=family,
                healthy=bool(operations),
                message=f"{len(operations)} operations",
                details={"operations": operations},
            )
        return check

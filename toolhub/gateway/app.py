"""
Application factory.

Wires the pipeline components together and returns the Starlette app.
Production builds everything from toolhub.toml; tests pass their own
settings and a ManualClock.
"""

from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware

from toolhub.core.logging_config import get_logger
from toolhub.core.middleware import RequestContextMiddleware, ErrorBoundaryMiddleware
from toolhub.gateway.api import ROUTE_ALIASES, ROUTED_OPERATIONS, build_routes
from toolhub.gateway.health import HealthChecker
from toolhub.operations import build_registry
from toolhub.pipeline.clock import Clock, SystemClock
from toolhub.pipeline.downloads import DownloadServer
from toolhub.pipeline.executor import OperationExecutor
from toolhub.pipeline.grants import DownloadGrantManager
from toolhub.pipeline.intake import UploadIntake
from toolhub.pipeline.packager import ArtifactPackager
from toolhub.pipeline.scheduler import CleanupScheduler
from toolhub.pipeline.service import ToolPipeline
from toolhub.pipeline.settings import PipelineSettings
from toolhub.pipeline.store import LocalAssetStore

logger = get_logger(__name__)


def create_app(settings: Optional[PipelineSettings] = None, clock: Optional[Clock] = None) -> Starlette:
    """Build the ASGI app.

    Raises:
        RuntimeError: a routed operation has no registered handler.
    """
    settings = settings or PipelineSettings.from_config()
    clock = clock or SystemClock()

    registry = build_registry(settings)
    registry.require(ROUTED_OPERATIONS)
    registry.require(ROUTE_ALIASES.values())

    store = LocalAssetStore(settings.storage_root)
    scheduler = CleanupScheduler(
        store,
        clock,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        stale_after_seconds=settings.stale_after_seconds,
    )
    grants = DownloadGrantManager(store, scheduler, clock, retention_seconds=settings.retention_seconds)
    executor = OperationExecutor(settings.executor_timeout_seconds)
    pipeline = ToolPipeline(
        registry=registry,
        store=store,
        intake=UploadIntake(store),
        executor=executor,
        packager=ArtifactPackager(),
        grants=grants,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        store.prepare()
        # Timers do not survive a restart; sweep once so orphans go immediately.
        scheduler.sweep()
        await scheduler.start()
        logger.info(
            f"Application startup complete ({len(registry)} operations, "
            f"storage at {settings.storage_root}, retention {settings.retention_seconds}s)"
        )
        try:
            yield
        finally:
            await scheduler.stop()
            logger.info("Application shutdown complete")

    app = Starlette(
        debug=False,
        routes=build_routes(),
        middleware=[
            Middleware(RequestContextMiddleware),
            Middleware(ErrorBoundaryMiddleware),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clock = clock
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler
    app.state.grants = grants
    app.state.downloads = DownloadServer(grants, store, chunk_size=settings.download_chunk_bytes)
    app.state.health_checker = HealthChecker(store, scheduler, grants, registry)
    return app

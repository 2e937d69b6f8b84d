"""
Download grant manager.

Issues an unguessable grant per deliverable: the bytes are copied into a
fresh ``downloads/<grantId>/`` directory and a cleanup timer is registered
for the end of the retention window. The window is the same for every
operation.
"""

import asyncio
import secrets
import threading
from typing import Dict, Optional, Set

from toolhub.core.errors import PackagingError
from toolhub.core.logging_config import get_logger, short_id
from toolhub.pipeline.clock import Clock
from toolhub.pipeline.models import Deliverable, DownloadGrant
from toolhub.pipeline.scheduler import CleanupScheduler
from toolhub.pipeline.store import LocalAssetStore, sanitize_filename

logger = get_logger(__name__)

GRANT_ID_BYTES = 24


class DownloadGrantManager:
    """Creates, resolves and reclaims download grants."""

    def __init__(
        self,
        store: LocalAssetStore,
        scheduler: CleanupScheduler,
        clock: Clock,
        retention_seconds: int = 240,
    ):
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.retention_seconds = retention_seconds
        self._grants: Dict[str, DownloadGrant] = {}
        self._lock = threading.Lock()

    async def issue(self, deliverable: Deliverable) -> DownloadGrant:
        """Copy ``deliverable`` into an isolated directory and register its expiry.

        Raises:
            PackagingError: the delivery copy could not be written.
        """
        grant_id = secrets.token_urlsafe(GRANT_ID_BYTES)
        file_name = sanitize_filename(deliverable.file_name)
        directory = self.store.isolated_dir(grant_id)
        try:
            await asyncio.to_thread(self.store.copy, deliverable.local_path, directory, file_name)
        except OSError as e:
            self.store.delete(directory)
            raise PackagingError(f"Could not copy deliverable for grant {short_id(grant_id)}", cause=e) from e

        now = self.clock.now()
        grant = DownloadGrant(
            grant_id=grant_id,
            file_name=file_name,
            delivery_path=directory,
            created_at=now,
            expires_at=now + self.retention_seconds,
        )
        with self._lock:
            self._grants[grant_id] = grant
        self.scheduler.schedule(grant.expires_at, f"grant:{grant_id}", lambda: self.reclaim(grant_id))

        logger.info(
            f"Issued grant {short_id(grant_id)} for {file_name} "
            f"({deliverable.size_bytes} bytes, expires in {self.retention_seconds}s)"
        )
        return grant

    def lookup(self, grant_id: str) -> Optional[DownloadGrant]:
        """Live grant for ``grant_id``; None once unknown or logically expired."""
        with self._lock:
            grant = self._grants.get(grant_id)
        if grant is None or grant.is_expired(self.clock.now()):
            return None
        return grant

    def reclaim(self, grant_id: str) -> bool:
        """Forget a grant and delete its delivery directory."""
        with self._lock:
            grant = self._grants.pop(grant_id, None)
        directory = grant.delivery_path if grant else self.store.isolated_dir(grant_id, create=False)
        removed = self.store.delete(directory)
        if removed:
            logger.info(f"Reclaimed grant {short_id(grant_id)}")
        return removed

    def active_ids(self) -> Set[str]:
        with self._lock:
            return set(self._grants)

    def __len__(self) -> int:
        with self._lock:
            return len(self._grants)

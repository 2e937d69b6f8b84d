"""
Pipeline orchestration: intake → execute → package → grant.

Stages run strictly in sequence for one request. Uploads and the work
directory are released on every exit path; only the delivery copy under
downloads/<grantId>/ outlives the request.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from toolhub.core.logging_config import get_logger
from toolhub.pipeline.executor import OperationExecutor
from toolhub.pipeline.grants import DownloadGrantManager
from toolhub.pipeline.intake import Submission, UploadIntake
from toolhub.pipeline.models import (
    DownloadGrant,
    OperationKind,
    OperationResult,
    SkippedInput,
)
from toolhub.pipeline.packager import ArtifactPackager
from toolhub.pipeline.registry import OperationRegistry, OperationSpec
from toolhub.pipeline.store import PROCESSED, LocalAssetStore

logger = get_logger(__name__)


@dataclass
class PipelineOutcome:
    """Result of one successful request."""
    spec: OperationSpec
    result: OperationResult
    processed: int
    skipped: List[SkippedInput] = field(default_factory=list)
    grant: Optional[DownloadGrant] = None

    def to_response(self) -> Dict[str, Any]:
        """JSON body for the client."""
        body: Dict[str, Any] = {"success": True}
        if self.grant is not None:
            body["downloadUrl"] = self.grant.download_url
            body["expiresIn"] = self.grant.expires_in
            body["fileName"] = self.grant.file_name
        body.update(self.result.payload)

        message = self.result.message or "Processed successfully"
        if self.skipped:
            body["processedFiles"] = self.processed
            body["skippedFiles"] = len(self.skipped)
            body["skipped"] = [s.to_dict() for s in self.skipped]
            total = self.processed + len(self.skipped)
            message = f"{message} ({self.processed} of {total} file(s) processed, {len(self.skipped)} skipped)"
        body["message"] = message
        return body


class ToolPipeline:
    """Runs one operation request end to end."""

    def __init__(
        self,
        registry: OperationRegistry,
        store: LocalAssetStore,
        intake: UploadIntake,
        executor: OperationExecutor,
        packager: ArtifactPackager,
        grants: DownloadGrantManager,
    ):
        self.registry = registry
        self.store = store
        self.intake = intake
        self.executor = executor
        self.packager = packager
        self.grants = grants

    async def run(self, spec: OperationSpec, submission: Submission) -> PipelineOutcome:
        """Process a submission for ``spec``.

        Raises:
            ValidationError: input or parameters rejected (nothing written).
            ExecutionError: the handler failed or timed out.
            PackagingError: archive or delivery copy failed.
        """
        batch, params = await asyncio.to_thread(self.intake.receive, spec, submission)
        with batch:
            work_dir = None
            if spec.kind is OperationKind.DELIVERABLE:
                work_dir = self.store.create(PROCESSED, spec.slug)
            try:
                result = await self.executor.execute(spec, batch.assets, params, work_dir)
                grant = None
                if spec.kind is OperationKind.DELIVERABLE:
                    deliverable = await self.packager.package(spec, result, work_dir)
                    grant = await self.grants.issue(deliverable)
            finally:
                if work_dir is not None:
                    self.store.delete(work_dir)

        return PipelineOutcome(
            spec=spec,
            result=result,
            processed=len(batch.assets),
            skipped=batch.skipped,
            grant=grant,
        )

    async def run_operation(self, operation_id: str, submission: Submission) -> PipelineOutcome:
        return await self.run(self.registry.lookup(operation_id), submission)

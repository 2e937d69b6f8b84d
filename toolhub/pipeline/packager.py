"""
Artifact packager.

One output passes through untouched (only its presentation name changes);
several outputs are zipped flat into a single archive. The archive is
written under a temporary name and renamed once the zip is closed, so a
half-written archive is never handed on.
"""

import asyncio
import os
import zipfile
from pathlib import Path
from typing import List

from toolhub.core.errors import PackagingError
from toolhub.core.logging_config import get_logger
from toolhub.pipeline.models import Deliverable, OperationResult, OutputAsset
from toolhub.pipeline.registry import OperationSpec
from toolhub.pipeline.store import sanitize_filename

logger = get_logger(__name__)


def presentation_name(spec: OperationSpec, suggested_name: str) -> str:
    """Client-facing name for a single-output deliverable."""
    name = sanitize_filename(suggested_name)
    prefix = spec.output_prefix
    if prefix and not name.startswith(prefix):
        return f"{prefix}{name}"
    return name


def unique_member_names(outputs: List[OutputAsset]) -> List[str]:
    """Archive member names: basenames, de-duplicated as 'name (1).ext'."""
    seen = set()
    names = []
    for output in outputs:
        name = sanitize_filename(output.suggested_name)
        stem, dot, ext = name.rpartition(".")
        if not dot:
            stem, ext = name, ""
        candidate = name
        counter = 1
        while candidate.lower() in seen:
            candidate = f"{stem} ({counter}){dot}{ext}"
            counter += 1
        seen.add(candidate.lower())
        names.append(candidate)
    return names


class ArtifactPackager:
    """Turns an OperationResult into exactly one Deliverable."""

    def __init__(self, attempts: int = 2, compresslevel: int = 6):
        self.attempts = attempts
        self.compresslevel = compresslevel

    async def package(self, spec: OperationSpec, result: OperationResult, work_dir: Path) -> Deliverable:
        return await asyncio.to_thread(self.package_sync, spec, result, work_dir)

    def package_sync(self, spec: OperationSpec, result: OperationResult, work_dir: Path) -> Deliverable:
        outputs = result.outputs
        if not outputs:
            raise PackagingError(f"{spec.id}: nothing to package")

        if len(outputs) == 1:
            only = outputs[0]
            return Deliverable(
                local_path=only.local_path,
                file_name=presentation_name(spec, only.suggested_name),
                size_bytes=only.size_bytes,
            )

        archive_name = sanitize_filename(result.archive_name or spec.default_archive_name)
        if not archive_name.lower().endswith(".zip"):
            archive_name += ".zip"
        target = work_dir / archive_name

        last_error = None
        for attempt in range(1, self.attempts + 1):
            try:
                return self._build_archive(outputs, target)
            except OSError as e:
                last_error = e
                logger.warning(f"{spec.id}: archive attempt {attempt}/{self.attempts} failed: {e}")
        raise PackagingError(f"{spec.id}: could not build archive", cause=last_error)

    def _build_archive(self, outputs: List[OutputAsset], target: Path) -> Deliverable:
        partial = target.with_name(f".{target.name}.partial")
        try:
            with zipfile.ZipFile(
                partial,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compresslevel,
            ) as archive:
                for name, output in zip(unique_member_names(outputs), outputs):
                    archive.write(output.local_path, arcname=name)
            os.replace(partial, target)
        except OSError:
            partial.unlink(missing_ok=True)
            raise
        return Deliverable(
            local_path=target,
            file_name=target.name,
            size_bytes=target.stat().st_size,
        )

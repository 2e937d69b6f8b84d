"""Unit tests for toolhub.pipeline.service: end-to-end pipeline runs without HTTP."""

import asyncio
import io

import pytest

from toolhub.core.errors import ExecutionError, PackagingError, UnsupportedOperation
from toolhub.pipeline.executor import OperationExecutor
from toolhub.pipeline.intake import IncomingFile, Submission, UploadIntake
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import Arity, OperationKind, OperationResult, OutputAsset
from toolhub.pipeline.packager import ArtifactPackager
from toolhub.pipeline.registry import OperationRegistry, OperationSpec
from toolhub.pipeline.service import ToolPipeline
from toolhub.pipeline.store import DOWNLOADS, PROCESSED, UPLOADS


def echo_files(inputs, params, work_dir):
    """Copy each uploaded text file into the work directory, upper-cased."""
    outputs = []
    for asset in inputs:
        path = work_dir / f"echo-{asset.original_name}"
        path.write_text(asset.local_path.read_text().upper())
        outputs.append(OutputAsset.from_path(path, asset.original_name))
    return OperationResult(outputs=outputs, message=f"Echoed {len(outputs)} file(s)")


def explode(inputs, params, work_dir):
    (work_dir / "half-written.tmp").write_text("partial")
    raise ValueError("library failure")


def count_chars(inputs, params, work_dir):
    return OperationResult(payload={"characters": len(inputs[0].text)}, message="Counted")


TEXT_FILES = frozenset({MediaType.TEXT})


@pytest.fixture
def registry():
    registry = OperationRegistry()
    registry.register_all([
        OperationSpec(id="test.echo", title="echo files", arity=Arity.MULTIPLE, handler=echo_files,
                      accepted_types=TEXT_FILES, archive_name="echoed.zip"),
        OperationSpec(id="test.explode", title="explode", arity=Arity.SINGLE, handler=explode,
                      accepted_types=TEXT_FILES),
        OperationSpec(id="test.count", title="count", arity=Arity.TEXT, handler=count_chars,
                      accepted_types=TEXT_FILES, kind=OperationKind.COMPUTATION),
    ])
    return registry.freeze()


@pytest.fixture
def pipeline(registry, store, grants):
    executor = OperationExecutor(timeout_seconds=10)
    return ToolPipeline(registry, store, UploadIntake(store), executor, ArtifactPackager(), grants)


def _text_file(name, body):
    data = body.encode("utf-8")
    return IncomingFile(filename=name, content_type="text/plain", size=len(data), stream=io.BytesIO(data))


def _files(root):
    return sorted(p for p in root.rglob("*") if p.is_file())


class TestPipelineRun:
    """Tests for a full intake → execute → package → grant pass."""

    def test_single_output_delivered(self, pipeline, store):
        outcome = asyncio.run(pipeline.run_operation("test.echo", Submission(files=[_text_file("a.txt", "hi")])))
        body = outcome.to_response()
        assert body["success"] is True
        assert body["expiresIn"] == 240
        assert body["fileName"] == "a.txt"
        assert body["downloadUrl"] == f"/download/{outcome.grant.grant_id}/a.txt"
        assert (outcome.grant.delivery_path / "a.txt").read_text() == "HI"

    def test_multiple_outputs_archived(self, pipeline):
        files = [_text_file(f"{n}.txt", n) for n in ("x", "y", "z")]
        outcome = asyncio.run(pipeline.run_operation("test.echo", Submission(files=files)))
        assert outcome.grant.file_name == "echoed.zip"

    def test_partial_success_reported(self, pipeline):
        """Skipped inputs are surfaced next to a successful result."""
        files = [_text_file("a.txt", "ok"), _text_file("b.pdf", "not a pdf")]
        body = asyncio.run(pipeline.run_operation("test.echo", Submission(files=files))).to_response()
        assert body["processedFiles"] == 1
        assert body["skippedFiles"] == 1
        assert body["skipped"][0]["fileName"] == "b.pdf"
        assert "(1 of 2 file(s) processed, 1 skipped)" in body["message"]

    def test_computation_issues_no_grant(self, pipeline, store):
        outcome = asyncio.run(pipeline.run_operation("test.count", Submission(text="four")))
        body = outcome.to_response()
        assert outcome.grant is None
        assert "downloadUrl" not in body
        assert body["characters"] == 4
        assert store.entries(PROCESSED) == []
        assert store.entries(DOWNLOADS) == []

    def test_unknown_operation(self, pipeline):
        with pytest.raises(UnsupportedOperation):
            asyncio.run(pipeline.run_operation("test.nothing", Submission()))


class TestCleanupCompleteness:
    """After any request only the delivery copy may remain."""

    def test_success_leaves_only_delivery(self, pipeline, store):
        files = [_text_file("a.txt", "one"), _text_file("b.txt", "two")]
        outcome = asyncio.run(pipeline.run_operation("test.echo", Submission(files=files)))
        assert _files(store.area(UPLOADS)) == []
        assert _files(store.area(PROCESSED)) == []
        assert _files(store.area(DOWNLOADS)) == [outcome.grant.delivery_path / "echoed.zip"]

    def test_execution_failure_leaves_nothing(self, pipeline, store):
        with pytest.raises(ExecutionError):
            asyncio.run(pipeline.run_operation("test.explode", Submission(files=[_text_file("a.txt", "x")])))
        for area in (UPLOADS, PROCESSED, DOWNLOADS):
            assert store.entries(area) == []

    def test_grant_failure_leaves_nothing(self, pipeline, store, monkeypatch):
        def broken_copy(source, directory, name):
            raise OSError("disk full")

        monkeypatch.setattr(store, "copy", broken_copy)
        with pytest.raises(PackagingError):
            asyncio.run(pipeline.run_operation("test.echo", Submission(files=[_text_file("a.txt", "x")])))
        for area in (UPLOADS, PROCESSED, DOWNLOADS):
            assert store.entries(area) == []


class TestIsolation:
    """Concurrent requests never share directories or content."""

    def test_concurrent_requests_are_disjoint(self, pipeline, store):
        async def scenario():
            return await asyncio.gather(*(
                pipeline.run_operation("test.echo", Submission(files=[_text_file("same.txt", f"request {i}")]))
                for i in range(100)
            ))

        outcomes = asyncio.run(scenario())
        directories = {o.grant.delivery_path for o in outcomes}
        assert len(directories) == 100
        for i, outcome in enumerate(outcomes):
            assert (outcome.grant.delivery_path / "same.txt").read_text() == f"REQUEST {i}"
        assert _files(store.area(UPLOADS)) == []
        assert _files(store.area(PROCESSED)) == []

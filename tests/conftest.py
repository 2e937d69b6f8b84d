"""
Shared test fixtures for the toolhub test suite.
"""

import io
from pathlib import Path
from typing import Callable

import fitz  # PyMuPDF
import pytest
from PIL import Image

from toolhub.pipeline.clock import ManualClock
from toolhub.pipeline.grants import DownloadGrantManager
from toolhub.pipeline.intake import IncomingFile
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import UploadedAsset
from toolhub.pipeline.scheduler import CleanupScheduler
from toolhub.pipeline.settings import PipelineSettings
from toolhub.pipeline.store import LocalAssetStore


@pytest.fixture
def settings(tmp_path: Path) -> PipelineSettings:
    """Pipeline settings rooted in a per-test temporary directory."""
    return PipelineSettings(
        storage_root=tmp_path / "store",
        executor_timeout_seconds=30,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000.0)


@pytest.fixture
def store(settings: PipelineSettings) -> LocalAssetStore:
    store = LocalAssetStore(settings.storage_root)
    store.prepare()
    return store


@pytest.fixture
def scheduler(store: LocalAssetStore, clock: ManualClock) -> CleanupScheduler:
    return CleanupScheduler(store, clock, sweep_interval_seconds=300, stale_after_seconds=1800)


@pytest.fixture
def grants(store, scheduler, clock) -> DownloadGrantManager:
    return DownloadGrantManager(store, scheduler, clock, retention_seconds=240)


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "work"
    directory.mkdir()
    return directory


# =============================================================================
# Sample content
# =============================================================================

def make_pdf(pages: int = 1, text: str = "Page") -> bytes:
    """A small PDF with one line of text per page."""
    with fitz.open() as doc:
        for number in range(1, pages + 1):
            page = doc.new_page()
            page.insert_text((72, 72), f"{text} {number}", fontsize=12)
        return doc.tobytes()


def make_image(fmt: str = "PNG", size=(40, 30), color=(200, 30, 30), mode: str = "RGB") -> bytes:
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes() -> Callable[..., bytes]:
    return make_pdf


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    return make_image


@pytest.fixture
def incoming() -> Callable[..., IncomingFile]:
    """Build an IncomingFile from raw bytes, as the gateway would."""
    def build(filename: str, data: bytes, content_type: str = "application/octet-stream") -> IncomingFile:
        return IncomingFile(filename=filename, content_type=content_type, size=len(data), stream=io.BytesIO(data))
    return build


@pytest.fixture
def asset_factory(tmp_path: Path) -> Callable[..., UploadedAsset]:
    """Write bytes to disk and wrap them as an UploadedAsset for handler tests."""
    uploads = tmp_path / "assets"
    uploads.mkdir()

    def build(name: str, data: bytes, media_type: MediaType) -> UploadedAsset:
        path = uploads / f"{len(list(uploads.iterdir()))}-{name}"
        path.write_bytes(data)
        return UploadedAsset(original_name=name, media_type=media_type, size_bytes=len(data), local_path=path)
    return build


@pytest.fixture
def text_asset() -> Callable[..., UploadedAsset]:
    def build(text: str, field: str = "text") -> UploadedAsset:
        return UploadedAsset(
            original_name=field,
            media_type=MediaType.HTML if field == "html" else MediaType.TEXT,
            size_bytes=len(text.encode("utf-8")),
            text=text,
        )
    return build
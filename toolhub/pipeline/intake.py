"""
Upload intake.

Validates a submission against an operation's input contract and only then
materializes the accepted files into a request-scoped upload directory.

Validation order (first hard failure wins):
1. Input arity
2. Media type per file (mismatches are skipped and reported, unless
   nothing usable remains)
3. Size ceiling per file / text payload
4. Text payload present for text operations
5. Parameter schema
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from toolhub.core.errors import (
    ArityViolation,
    FileTooLarge,
    NoInput,
    UnsupportedMediaType,
)
from toolhub.core.logging_config import get_logger
from toolhub.pipeline.media import (
    SNIFF_BYTES,
    MediaType,
    content_type_agrees,
    extensions_for,
    media_type_for_name,
    signature_matches,
)
from toolhub.pipeline.models import Arity, SkippedInput, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams
from toolhub.pipeline.store import UPLOADS, LocalAssetStore

logger = get_logger(__name__)


def format_limit(size_bytes: int) -> str:
    mb = size_bytes / (1024 * 1024)
    return f"{mb:g} MB"


@dataclass
class IncomingFile:
    """A file part as received from the client, before validation."""
    filename: str
    content_type: str
    size: int
    stream: BinaryIO

    @classmethod
    def from_upload(cls, upload) -> "IncomingFile":
        """Wrap a Starlette UploadFile (already spooled by the form parser)."""
        size = upload.size
        if size is None:
            upload.file.seek(0, 2)
            size = upload.file.tell()
        upload.file.seek(0)
        return cls(
            filename=upload.filename or "",
            content_type=upload.content_type or "",
            size=size,
            stream=upload.file,
        )

    def header(self) -> bytes:
        head = self.stream.read(SNIFF_BYTES)
        self.stream.seek(0)
        return head


@dataclass
class Submission:
    """Everything a client sent for one operation request."""
    files: List[IncomingFile] = field(default_factory=list)
    text: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IntakeBatch:
    """Accepted inputs for one request.

    Use as a context manager: the upload directory is deleted on exit
    whether processing succeeded or not.
    """
    store: LocalAssetStore
    assets: List[UploadedAsset]
    skipped: List[SkippedInput] = field(default_factory=list)
    directory: Optional[Path] = None

    def release(self) -> bool:
        if self.directory is None:
            return True
        removed = self.store.delete(self.directory)
        self.directory = None
        return removed

    def __enter__(self) -> "IntakeBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class UploadIntake:
    """Validates submissions and writes accepted files to the store."""

    def __init__(self, store: LocalAssetStore):
        self.store = store

    def receive(self, spec: OperationSpec, submission: Submission) -> Tuple[IntakeBatch, ToolParams]:
        """Validate a submission and materialize it.

        Raises a ValidationError subclass before anything is written.
        """
        self._check_arity(spec, submission)

        accepted: List[Tuple[IncomingFile, MediaType]] = []
        skipped: List[SkippedInput] = []
        if spec.takes_files:
            for incoming in submission.files:
                media_type, reason = self._classify(spec, incoming)
                if media_type is None:
                    skipped.append(SkippedInput(incoming.filename or "(unnamed)", reason))
                else:
                    accepted.append((incoming, media_type))
            self._check_survivors(spec, accepted, skipped)

        for incoming, _ in accepted:
            if incoming.size > spec.max_input_size_bytes:
                raise FileTooLarge(
                    f"File '{incoming.filename}' exceeds the "
                    f"{format_limit(spec.max_input_size_bytes)} limit"
                )

        text = None
        if spec.arity is Arity.TEXT:
            text = submission.text
            if text is None or not str(text).strip():
                raise NoInput("Text content is required")
            text = str(text)
            if len(text.encode("utf-8")) > spec.max_input_size_bytes:
                raise FileTooLarge(
                    f"Text exceeds the {format_limit(spec.max_input_size_bytes)} limit"
                )

        params = spec.parse_params(submission.params)

        if skipped:
            logger.warning(
                f"{spec.id}: skipped {len(skipped)} of "
                f"{len(submission.files)} file(s) with unsupported type"
            )

        if text is not None:
            asset = UploadedAsset(
                original_name=spec.text_field,
                media_type=MediaType.HTML if spec.text_field == "html" else MediaType.TEXT,
                size_bytes=len(text.encode("utf-8")),
                text=text,
            )
            return IntakeBatch(self.store, [asset], skipped), params
        if not spec.takes_files:
            return IntakeBatch(self.store, []), params

        return self._materialize(accepted, skipped), params

    # =========================================================================
    # Validation steps
    # =========================================================================

    def _check_arity(self, spec: OperationSpec, submission: Submission) -> None:
        if not spec.takes_files:
            return
        count = len(submission.files)
        if count == 0:
            raise NoInput("No file uploaded" if spec.arity is Arity.SINGLE else "No files uploaded")
        if spec.arity is Arity.SINGLE and count > 1:
            raise ArityViolation("Only one file can be processed at a time")
        if count < spec.min_inputs:
            raise ArityViolation(spec.arity_message or f"At least {spec.min_inputs} files required")
        if count > spec.max_inputs:
            raise ArityViolation(f"At most {spec.max_inputs} files can be processed at once")

    def _classify(self, spec: OperationSpec, incoming: IncomingFile) -> Tuple[Optional[MediaType], str]:
        media_type = media_type_for_name(incoming.filename)
        if media_type is None or media_type not in spec.accepted_types:
            return None, "Unsupported file extension"
        if not content_type_agrees(media_type, incoming.content_type):
            return None, f"Declared content type {incoming.content_type} does not match extension"
        if not signature_matches(media_type, incoming.header()):
            return None, "File content does not match its extension"
        return media_type, ""

    def _check_survivors(self, spec, accepted, skipped) -> None:
        if not accepted:
            allowed = ", ".join(extensions_for(spec.accepted_types))
            raise UnsupportedMediaType(f"Unsupported file type. Accepted types: {allowed}")
        if len(accepted) < spec.min_inputs:
            raise ArityViolation(spec.arity_message or f"At least {spec.min_inputs} files required")

    # =========================================================================
    # Materialization
    # =========================================================================

    def _materialize(self, accepted, skipped) -> IntakeBatch:
        directory = self.store.create(UPLOADS, "intake")
        batch = IntakeBatch(self.store, [], skipped, directory)
        try:
            for incoming, media_type in accepted:
                path = self.store.write(directory, incoming.filename, incoming.stream)
                batch.assets.append(UploadedAsset(
                    original_name=incoming.filename,
                    media_type=media_type,
                    size_bytes=path.stat().st_size,
                    local_path=path,
                ))
        except BaseException:
            batch.release()
            raise
        return batch

"""
Records that flow through the pipeline.

One request produces UploadedAssets (intake), OutputAssets (executor),
exactly one Deliverable (packager) and exactly one DownloadGrant
(grant manager) when it succeeds.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from toolhub.pipeline.media import MediaType


class Arity(str, Enum):
    """How an operation receives its input."""
    SINGLE = "single"
    MULTIPLE = "multiple"
    TEXT = "text"
    PARAMS = "params"  # parameters only, no file or text payload


class OperationKind(str, Enum):
    """Whether an operation produces a downloadable file."""
    DELIVERABLE = "deliverable"
    COMPUTATION = "computation"


@dataclass
class UploadedAsset:
    """One received file or text blob, owned by a single request."""
    original_name: str
    media_type: MediaType
    size_bytes: int
    local_path: Optional[Path] = None
    text: Optional[str] = None

    @property
    def stem(self) -> str:
        """Original name without extension, used to name outputs."""
        stem = Path(self.original_name).stem
        return stem or "file"


@dataclass
class SkippedInput:
    """A file that was dropped during intake, with the reason."""
    file_name: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"fileName": self.file_name, "reason": self.reason}


@dataclass
class OutputAsset:
    """A file written by a handler into the request's work directory."""
    local_path: Path
    suggested_name: str
    size_bytes: int

    @classmethod
    def from_path(cls, path: Path, suggested_name: Optional[str] = None) -> "OutputAsset":
        return cls(
            local_path=path,
            suggested_name=suggested_name or path.name,
            size_bytes=path.stat().st_size,
        )


@dataclass
class OperationResult:
    """What a handler returns.

    Deliverable operations fill ``outputs``; computation-only operations
    leave it empty and put their answer in ``payload``. ``payload`` is
    merged into the JSON response in both cases.
    """
    outputs: List[OutputAsset] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)
    message: str = ""
    archive_name: Optional[str] = None


@dataclass
class Deliverable:
    """The single artifact handed to the grant manager."""
    local_path: Path
    file_name: str
    size_bytes: int


@dataclass
class DownloadGrant:
    """Time-limited reference to a delivery directory."""
    grant_id: str
    file_name: str
    delivery_path: Path
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def download_url(self) -> str:
        return f"/download/{self.grant_id}/{quote(self.file_name)}"

    @property
    def expires_in(self) -> int:
        return int(round(self.expires_at - self.created_at))

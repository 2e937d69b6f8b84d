"""
Local filesystem asset store.

All ephemeral state lives under one root:

    uploads/<uuid>-intake/<id>-<name>     request-scoped upload directories
    processed/<uuid>-<label>/...          handler work directories
    downloads/<grantId>/<fileName>        one isolated directory per grant

Directory naming, filename sanitizing and best-effort deletion live here so
no other component touches paths directly.
"""

import os
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, List, Optional

from toolhub.core.logging_config import get_logger, short_id

logger = get_logger(__name__)

UPLOADS = "uploads"
PROCESSED = "processed"
DOWNLOADS = "downloads"
AREAS = (UPLOADS, PROCESSED, DOWNLOADS)

MAX_NAME_LENGTH = 120

_UNSAFE_CHARS = re.compile(r"[^\w.\- ()]+", re.UNICODE)
_GRANT_ID = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def sanitize_filename(name: Optional[str], default: str = "file") -> str:
    """Reduce a client-supplied filename to a safe single path component.

    Drops any directory part, replaces unsafe characters, strips leading
    dots and caps the length while keeping the extension.
    """
    base = re.split(r"[\\/]", name or "")[-1]
    base = _UNSAFE_CHARS.sub("_", base).strip().lstrip(".")
    if not base:
        return default
    if len(base) > MAX_NAME_LENGTH:
        stem, dot, ext = base.rpartition(".")
        if dot and len(ext) <= 10:
            base = stem[: MAX_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            base = base[:MAX_NAME_LENGTH]
    return base


class LocalAssetStore:
    """Filesystem-backed store for uploads, work files and deliveries."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def prepare(self) -> None:
        """Create the area directories if they do not exist."""
        for area in AREAS:
            self.area(area).mkdir(parents=True, exist_ok=True)

    def area(self, name: str) -> Path:
        if name not in AREAS:
            raise ValueError(f"Unknown storage area: {name}")
        return self.root / name

    def describe(self, path: Path) -> str:
        """Path for log lines: area, then the entry name cut down by short_id."""
        try:
            parts = Path(path).relative_to(self.root).parts
        except ValueError:
            return Path(path).name
        if len(parts) < 2:
            return "/".join(parts)
        return "/".join((parts[0], short_id(parts[1]), *parts[2:]))

    # =========================================================================
    # Creation
    # =========================================================================

    def create(self, area: str, label: str) -> Path:
        """Create a fresh, uniquely named directory inside an area."""
        directory = self.area(area) / f"{uuid.uuid4()}-{sanitize_filename(label, 'work')}"
        directory.mkdir(parents=True, exist_ok=False)
        return directory

    def write(self, directory: Path, name: str, source: BinaryIO) -> Path:
        """Stream ``source`` into ``directory`` under a collision-resistant name."""
        target = directory / f"{uuid.uuid4().hex[:8]}-{sanitize_filename(name)}"
        with open(target, "wb") as out:
            shutil.copyfileobj(source, out, length=1024 * 1024)
        return target

    def read(self, path: Path) -> BinaryIO:
        return open(path, "rb")

    def copy(self, source: Path, directory: Path, name: str) -> Path:
        """Copy a file into ``directory`` as ``name``.

        The bytes land under a temporary name first and are renamed into
        place, so readers never observe a partial copy.
        """
        target = directory / name
        partial = directory / f".{name}.partial"
        shutil.copyfile(source, partial)
        os.replace(partial, target)
        return target

    # =========================================================================
    # Delivery locations
    # =========================================================================

    def isolated_dir(self, grant_id: str, create: bool = True) -> Path:
        """Directory that holds exactly one grant's deliverable."""
        if not _GRANT_ID.match(grant_id or ""):
            raise ValueError("Malformed grant id")
        directory = self.area(DOWNLOADS) / grant_id
        if create:
            directory.mkdir(parents=True, exist_ok=False)
        return directory

    def locate(self, grant_id: str, file_name: str) -> Optional[Path]:
        """Expected path of a delivered file, or None for malformed input."""
        if not _GRANT_ID.match(grant_id or ""):
            return None
        if not file_name or sanitize_filename(file_name) != file_name:
            return None
        return self.area(DOWNLOADS) / grant_id / file_name

    # =========================================================================
    # Deletion and listing
    # =========================================================================

    def delete(self, path: Optional[Path]) -> bool:
        """Remove a file or directory tree.

        Returns False (and logs) when removal fails. Already-missing paths
        count as success.
        """
        if path is None:
            return True
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Could not delete {self.describe(path)}: {e}")
            return False

    def entries(self, area: str) -> List[Path]:
        """Top-level entries of an area (missing area → empty list)."""
        try:
            return list(self.area(area).iterdir())
        except FileNotFoundError:
            return []

    def is_writable(self) -> bool:
        return all(os.access(self.area(area), os.W_OK) for area in AREAS)

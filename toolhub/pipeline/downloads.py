"""
Download server.

Resolves a grant handle to an open file and streams it in chunks. Every
miss (unknown grant, expired grant, wrong name, file already reclaimed)
is the same NotFound, so callers learn nothing about other grants.
Fetching does not consume the grant.
"""

import mimetypes
import os
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from toolhub.core.errors import NotFound
from toolhub.pipeline.grants import DownloadGrantManager
from toolhub.pipeline.store import LocalAssetStore


@dataclass
class DownloadStream:
    """An open deliverable, iterated chunk by chunk."""
    file_name: str
    size_bytes: int
    media_type: str
    handle: BinaryIO
    chunk_size: int = 64 * 1024

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.handle.close()

    def close(self) -> None:
        self.handle.close()


class DownloadServer:
    def __init__(self, grants: DownloadGrantManager, store: LocalAssetStore, chunk_size: int = 64 * 1024):
        self.grants = grants
        self.store = store
        self.chunk_size = chunk_size

    def resolve(self, grant_id: str, file_name: str) -> DownloadStream:
        """Open the deliverable behind a grant.

        The file handle is opened here, so cleanup that runs mid-transfer
        cannot cut an in-flight download short.
        """
        grant = self.grants.lookup(grant_id)
        if grant is None or grant.file_name != file_name:
            raise NotFound()

        path = self.store.locate(grant_id, file_name)
        if path is None:
            raise NotFound()
        try:
            handle = self.store.read(path)
        except OSError as e:
            raise NotFound(cause=e) from e

        size = os.fstat(handle.fileno()).st_size
        media_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        return DownloadStream(file_name, size, media_type, handle, self.chunk_size)

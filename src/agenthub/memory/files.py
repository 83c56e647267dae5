"""In-memory stand-in for the external file store.

Only the metadata and the retention hook matter to this service; file
bytes and image processing stay with the upload service.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..domain.entities import StoredFile
from ..domain.ports import IFileStore

logger = logging.getLogger(__name__)


class InMemoryFileStore(IFileStore):
    def __init__(self):
        self._files: dict[str, StoredFile] = {}

    async def put(self, stored_file: StoredFile) -> StoredFile:
        self._files[stored_file.file_id] = stored_file
        return stored_file

    async def get(self, file_id: str) -> Optional[StoredFile]:
        return self._files.get(file_id)

    async def evict_older_than(self, cutoff: datetime) -> list[str]:
        evicted = [
            file_id
            for file_id, stored_file in self._files.items()
            if stored_file.uploaded_at < cutoff
        ]
        for file_id in evicted:
            del self._files[file_id]

        if evicted:
            logger.info(f"Evicted {len(evicted)} files uploaded before {cutoff.isoformat()}")
        return evicted

    async def close(self) -> None:
        self._files.clear()

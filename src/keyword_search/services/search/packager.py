from __future__ import annotations

import logging
import os
from pathlib import Path
import tarfile
import threading
import uuid

from keyword_search.services.search.storage import IndexStorage
from keyword_search.services.search.types import IndexHandle

logger = logging.getLogger(__name__)


class ArchiveError(RuntimeError):
    pass


class ArchivePackager:
    """Builds the downloadable ``.tar.gz`` of an index on first request.

    Creation is serialized per index name and the archive is written to a
    temporary sibling that is renamed into place, so the canonical path either
    does not exist or holds a complete archive.
    """

    def __init__(self, storage: IndexStorage) -> None:
        self._storage = storage
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, index_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(index_name)
            if lock is None:
                lock = threading.Lock()
                self._locks[index_name] = lock
            return lock

    def ensure_archive(self, handle: IndexHandle) -> Path:
        archive_path = self._storage.archive_path(handle)
        if archive_path.is_file():
            logger.info("Reusing archive %s", archive_path)
            return archive_path

        try:
            with self._lock_for(handle.name):
                if archive_path.is_file():
                    logger.info("Reusing archive %s", archive_path)
                    return archive_path

                logger.info("Compressing index %s into %s", handle.name, archive_path)
                self._write_archive(handle.storage_path, archive_path)
                logger.info("Index compression completed: %s", archive_path)
            return archive_path
        finally:
            # waiters already hold the lock object; later callers take the fast path
            with self._locks_guard:
                self._locks.pop(handle.name, None)

    def _write_archive(self, source_dir: Path, archive_path: Path) -> None:
        tmp_path = archive_path.with_name(f".{archive_path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with tarfile.open(tmp_path, "w:gz") as archive:
                archive.add(source_dir, arcname=".")
            os.replace(tmp_path, archive_path)
        except (OSError, tarfile.TarError) as exc:
            logger.error("Failed to compress %s into %s: %s", source_dir, archive_path, exc)
            raise ArchiveError(f"Failed to compress index directory: {exc}") from exc
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

from __future__ import annotations

from pathlib import Path
import uuid

from keyword_search.services.search.types import IndexHandle

INDEX_NAME_PREFIX = "index-"
ARCHIVE_SUFFIX = ".tar.gz"


class InvalidIndexNameError(ValueError):
    pass


class IndexNotFoundError(FileNotFoundError):
    pass


def new_index_name() -> str:
    return f"{INDEX_NAME_PREFIX}{uuid.uuid4()}"


class IndexStorage:
    """Directory layout of the storage root.

    Each index lives in ``<root>/<name>/``; its packaged archive, once built,
    sits next to it as ``<root>/<name>.tar.gz``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def allocate(self) -> IndexHandle:
        """Create the directory for a brand-new index.

        Raises ``OSError`` if the filesystem refuses the directory.
        """
        name = new_index_name()
        path = self.root / name
        path.mkdir(parents=True, exist_ok=False)
        return IndexHandle(name=name, storage_path=path)

    def path_for(self, index_name: str) -> Path:
        if (
            not index_name
            or index_name in {".", ".."}
            or "/" in index_name
            or "\\" in index_name
            or "\x00" in index_name
        ):
            raise InvalidIndexNameError(f"Invalid index name: {index_name!r}")

        path = (self.root / index_name).resolve()
        if path.parent != self.root:
            raise InvalidIndexNameError(f"Invalid index name: {index_name!r}")
        return path

    def resolve(self, index_name: str) -> IndexHandle:
        path = self.path_for(index_name)
        if not path.is_dir():
            raise IndexNotFoundError(f"Index '{index_name}' does not exist")
        return IndexHandle(name=index_name, storage_path=path)

    def archive_path(self, handle: IndexHandle) -> Path:
        return self.root / f"{handle.name}{ARCHIVE_SUFFIX}"

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

UNKNOWN = "Unknown"
DEFAULT_TOP_K = 5
MAX_TOP_K = 1000

OutcomeStatus = Literal["indexed", "failed"]


@dataclass(frozen=True)
class Document:
    content: str
    title: str | None = None


@dataclass(frozen=True)
class DocumentOutcome:
    filename: str
    status: OutcomeStatus
    error: str | None = None

    @classmethod
    def indexed(cls, filename: str) -> "DocumentOutcome":
        return cls(filename=filename, status="indexed")

    @classmethod
    def failed(cls, filename: str, error: str) -> "DocumentOutcome":
        return cls(filename=filename, status="failed", error=error)

    def as_failed(self, error: str) -> "DocumentOutcome":
        return replace(self, status="failed", error=error)


@dataclass(frozen=True)
class DecodedBatch:
    """Decoder output: one outcome per submitted item, in order.

    ``documents`` holds only the admitted items; ``positions`` maps each of
    them back to its slot in ``outcomes``. A ``rejected`` batch comes from a
    request body that could not be read at all and must not produce an index.
    """

    outcomes: list[DocumentOutcome] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    positions: list[int] = field(default_factory=list)
    rejected: bool = False


@dataclass(frozen=True)
class IndexHandle:
    name: str
    storage_path: Path


@dataclass(frozen=True)
class IndexBuildResult:
    outcomes: list[DocumentOutcome]
    handle: IndexHandle | None = None
    documents_written: int = 0

    @property
    def succeeded(self) -> bool:
        return self.handle is not None


@dataclass(frozen=True)
class SearchQuery:
    raw_query: str
    index_name: str
    top_k: int = DEFAULT_TOP_K


@dataclass(frozen=True)
class SearchHit:
    title: str
    content: str
    score: float


@dataclass(frozen=True)
class SearchResult:
    hits: list[SearchHit] = field(default_factory=list)
    error: str | None = None

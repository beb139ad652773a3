from keyword_search.services.search.builder import build_index
from keyword_search.services.search.decoder import UploadItem, decode_json_batch, decode_upload
from keyword_search.services.search.packager import ArchiveError, ArchivePackager
from keyword_search.services.search.retrieval import search_index
from keyword_search.services.search.storage import IndexNotFoundError, IndexStorage
from keyword_search.services.search.types import (
    DecodedBatch,
    Document,
    DocumentOutcome,
    IndexBuildResult,
    SearchHit,
    SearchQuery,
    SearchResult,
)

__all__ = [
    "ArchiveError",
    "ArchivePackager",
    "DecodedBatch",
    "Document",
    "DocumentOutcome",
    "IndexBuildResult",
    "IndexNotFoundError",
    "IndexStorage",
    "SearchHit",
    "SearchQuery",
    "SearchResult",
    "UploadItem",
    "build_index",
    "decode_json_batch",
    "decode_upload",
    "search_index",
]

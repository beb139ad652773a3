from __future__ import annotations

import logging

import tantivy

from keyword_search.services.search.builder import BODY_FIELD, TITLE_FIELD
from keyword_search.services.search.storage import (
    IndexNotFoundError,
    IndexStorage,
    InvalidIndexNameError,
)
from keyword_search.services.search.types import UNKNOWN, SearchHit, SearchQuery, SearchResult

logger = logging.getLogger(__name__)

QUERY_FIELDS = [TITLE_FIELD, BODY_FIELD]


def scoped_query_text(raw_query: str) -> str:
    # candidates are parsed against both fields, but the text is pinned to body
    return f"{BODY_FIELD}:{raw_query}"


def _stored_text(document: tantivy.Document, field_name: str) -> str:
    value = document.get_first(field_name)
    if not isinstance(value, str):
        return UNKNOWN
    return value


def _failure(message: str) -> SearchResult:
    logger.error("%s", message)
    return SearchResult(hits=[], error=message)


def search_index(query: SearchQuery, storage: IndexStorage) -> SearchResult:
    """Run ``query`` against a committed index.

    Never raises for lookup, parse or engine failures: those come back as an
    empty hit list with ``error`` set.
    """
    if query.top_k < 1:
        raise ValueError("top_k must be >= 1")

    logger.info("Search request: index=%s query=%r top_k=%d", query.index_name, query.raw_query, query.top_k)

    try:
        handle = storage.resolve(query.index_name)
    except (IndexNotFoundError, InvalidIndexNameError):
        return _failure(f"Index '{query.index_name}' does not exist")

    logger.info("Opening index %s", handle.storage_path)
    try:
        index = tantivy.Index.open(str(handle.storage_path))
        index.config_reader(reload_policy="commit")
        searcher = index.searcher()
    except (ValueError, OSError) as exc:
        return _failure(f"Failed to open index: {exc}")

    try:
        parsed = index.parse_query(scoped_query_text(query.raw_query), QUERY_FIELDS)
    except ValueError as exc:
        return _failure(f"Failed to parse query: {exc}")

    # the engine reserves room for `limit` results up front
    limit = max(1, min(query.top_k, searcher.num_docs))
    try:
        top_docs = searcher.search(parsed, limit).hits
    except (ValueError, OverflowError, OSError) as exc:
        return _failure(f"Search failed: {exc}")

    hits: list[SearchHit] = []
    for score, address in top_docs:
        try:
            document = searcher.doc(address)
        except (ValueError, OverflowError, OSError) as exc:
            return _failure(f"Search failed: {exc}")

        hits.append(
            SearchHit(
                title=_stored_text(document, TITLE_FIELD),
                content=_stored_text(document, BODY_FIELD),
                score=float(score),
            )
        )

    logger.info("Search completed: index=%s hits=%d", query.index_name, len(hits))
    return SearchResult(hits=hits)

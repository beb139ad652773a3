from __future__ import annotations

import logging
from time import perf_counter

import tantivy

from keyword_search.config import MEMORY_BUDGET_IN_BYTES
from keyword_search.services.search.storage import IndexStorage
from keyword_search.services.search.types import (
    UNKNOWN,
    DecodedBatch,
    Document,
    IndexBuildResult,
    IndexHandle,
)

logger = logging.getLogger(__name__)

TITLE_FIELD = "title"
BODY_FIELD = "body"


class IndexBuildError(RuntimeError):
    pass


def build_schema() -> tantivy.Schema:
    """Fixed two-field schema; both fields are stored so hits can return them."""
    schema_builder = tantivy.SchemaBuilder()
    schema_builder.add_text_field(TITLE_FIELD, stored=True)
    schema_builder.add_text_field(BODY_FIELD, stored=True)
    return schema_builder.build()


def to_engine_document(document: Document) -> tantivy.Document:
    engine_document = tantivy.Document()
    engine_document.add_text(TITLE_FIELD, UNKNOWN if document.title is None else document.title)
    engine_document.add_text(BODY_FIELD, document.content)
    return engine_document


def _open_writer(handle: IndexHandle, memory_budget: int) -> tantivy.IndexWriter:
    try:
        index = tantivy.Index(build_schema(), path=str(handle.storage_path), reuse=False)
    except (ValueError, OSError) as exc:
        raise IndexBuildError(f"Failed to create index: {exc}") from exc

    try:
        return index.writer(heap_size=memory_budget, num_threads=1)
    except (ValueError, OSError) as exc:
        raise IndexBuildError(f"Failed to create index writer: {exc}") from exc


def _commit(writer: tantivy.IndexWriter) -> None:
    try:
        writer.commit()
    except (ValueError, OSError) as exc:
        raise IndexBuildError(f"Failed to commit index: {exc}") from exc

    # merges may still be rewriting segment files after commit
    try:
        writer.wait_merging_threads()
    except (ValueError, OSError) as exc:
        logger.warning("Merging threads did not finish cleanly: %s", exc)


def build_index(
    batch: DecodedBatch,
    storage: IndexStorage,
    *,
    memory_budget: int = MEMORY_BUDGET_IN_BYTES,
) -> IndexBuildResult:
    """Write a decoded batch into a brand-new index.

    The returned result always carries one outcome per submitted item. It only
    carries a handle when the index was created and committed.
    """
    outcomes = list(batch.outcomes)
    start = perf_counter()

    try:
        handle = storage.allocate()
    except OSError as exc:
        logger.error("Failed to create index directory under %s: %s", storage.root, exc)
        return IndexBuildResult(outcomes=outcomes)

    logger.info("Creating index %s at %s", handle.name, handle.storage_path)

    try:
        writer = _open_writer(handle, memory_budget)
    except IndexBuildError as exc:
        logger.error("Index %s: %s", handle.name, exc)
        return IndexBuildResult(outcomes=outcomes)

    written = 0
    total = len(batch.documents)
    for number, (document, position) in enumerate(zip(batch.documents, batch.positions), start=1):
        try:
            writer.add_document(to_engine_document(document))
        except (ValueError, OSError) as exc:
            logger.error(
                "Failed to add document %d/%d (%s) to %s: %s",
                number,
                total,
                outcomes[position].filename,
                handle.name,
                exc,
            )
            outcomes[position] = outcomes[position].as_failed(f"Failed to add to index: {exc}")
            continue
        written += 1
        logger.debug("Document %d/%d added to %s", number, total, handle.name)

    try:
        _commit(writer)
    except IndexBuildError as exc:
        logger.error("Index %s: %s", handle.name, exc)
        return IndexBuildResult(outcomes=outcomes, documents_written=written)

    duration_ms = int((perf_counter() - start) * 1000)
    logger.info(
        "Committed index %s: documents=%d duration_ms=%d",
        handle.name,
        written,
        duration_ms,
    )
    return IndexBuildResult(outcomes=outcomes, handle=handle, documents_written=written)

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging

from keyword_search.services.search.types import (
    UNKNOWN,
    DecodedBatch,
    Document,
    DocumentOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_CONTENT_TYPE = "application/octet-stream"
UNKNOWN_FILENAME = "unknown"

# octet-stream is admitted because upload clients often omit or mis-tag the type
SUPPORTED_UPLOAD_CONTENT_TYPES = frozenset(
    {"text/plain", "text/markdown", DEFAULT_UPLOAD_CONTENT_TYPE}
)

EMPTY_CONTENT_ERROR = "Empty content is not allowed"
UNSUPPORTED_FILE_TYPE_ERROR = "Unsupported file type. Only .txt and .md files are allowed"
INVALID_UTF8_ERROR = "Invalid UTF-8 content"
UNSUPPORTED_CONTENT_TYPE_ERROR = "Unsupported content type"
INVALID_JSON_ERROR = "Failed to parse JSON request"
INVALID_MULTIPART_ERROR = "Failed to parse multipart request"


@dataclass(frozen=True)
class UploadItem:
    """One field of a multipart upload, already read off the wire.

    ``read_error`` is set instead of ``data`` when the field body could not be
    read.
    """

    filename: str | None
    content_type: str | None
    data: bytes = b""
    read_error: str | None = None


def validate_content(content: str) -> str | None:
    if not content.strip():
        return EMPTY_CONTENT_ERROR
    return None


def media_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_supported_upload_type(content_type: str | None) -> bool:
    return (media_type(content_type) or DEFAULT_UPLOAD_CONTENT_TYPE) in SUPPORTED_UPLOAD_CONTENT_TYPES


def rejected_request(error: str) -> DecodedBatch:
    """Batch for a request whose body could not be interpreted at all."""
    return DecodedBatch(
        outcomes=[DocumentOutcome.failed(UNKNOWN_FILENAME, error)],
        rejected=True,
    )


class _BatchCollector:
    def __init__(self) -> None:
        self.outcomes: list[DocumentOutcome] = []
        self.documents: list[Document] = []
        self.positions: list[int] = []

    def fail(self, filename: str, error: str) -> None:
        self.outcomes.append(DocumentOutcome.failed(filename, error))

    def admit(self, filename: str, document: Document) -> None:
        error = validate_content(document.content)
        if error is not None:
            logger.warning("Rejected %s: %s", filename, error)
            self.fail(filename, error)
            return

        self.positions.append(len(self.outcomes))
        self.outcomes.append(DocumentOutcome.indexed(filename))
        self.documents.append(document)

    def build(self) -> DecodedBatch:
        batch = DecodedBatch(
            outcomes=self.outcomes,
            documents=self.documents,
            positions=self.positions,
        )
        logger.info(
            "Decoded %d items: admitted=%d rejected=%d",
            len(batch.outcomes),
            len(batch.documents),
            len(batch.outcomes) - len(batch.documents),
        )
        return batch


def decode_json_batch(documents: Iterable[Document]) -> DecodedBatch:
    collector = _BatchCollector()
    for document in documents:
        collector.admit(UNKNOWN if document.title is None else document.title, document)
    return collector.build()


def decode_upload(items: Iterable[UploadItem]) -> DecodedBatch:
    collector = _BatchCollector()

    for number, item in enumerate(items, start=1):
        filename = item.filename or UNKNOWN_FILENAME
        content_type = item.content_type or DEFAULT_UPLOAD_CONTENT_TYPE
        logger.info(
            "Processing field %d: filename=%s content_type=%s",
            number,
            filename,
            content_type,
        )

        if not is_supported_upload_type(content_type):
            logger.warning(
                "Unsupported file type for field %d: filename=%s content_type=%s",
                number,
                filename,
                content_type,
            )
            collector.fail(filename, UNSUPPORTED_FILE_TYPE_ERROR)
            continue

        if item.read_error is not None:
            logger.error("Failed to read field %d (%s): %s", number, filename, item.read_error)
            collector.fail(filename, f"Failed to read file: {item.read_error}")
            continue

        try:
            content = item.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.error("UTF-8 decoding failed for %s: %s", filename, exc)
            collector.fail(filename, INVALID_UTF8_ERROR)
            continue

        collector.admit(filename, Document(content=content))

    return collector.build()

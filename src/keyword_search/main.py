
import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from keyword_search.config import (
    BindAddress,
    ServerConfig,
    Settings,
    StartupError,
    get_settings,
    parse_socket_addr,
    resolve_download_url_prefix,
)
from keyword_search.logger import setup_logging
from keyword_search.services.search import (
    ArchiveError,
    ArchivePackager,
    DecodedBatch,
    Document,
    DocumentOutcome,
    IndexNotFoundError,
    IndexStorage,
    SearchQuery,
    UploadItem,
    build_index,
    decode_json_batch,
    decode_upload,
    search_index,
)
from keyword_search.services.search.decoder import (
    INVALID_JSON_ERROR,
    INVALID_MULTIPART_ERROR,
    UNSUPPORTED_CONTENT_TYPE_ERROR,
    media_type,
    rejected_request,
)
from keyword_search.services.search.storage import InvalidIndexNameError
from keyword_search.services.search.types import DEFAULT_TOP_K, MAX_TOP_K

APP_VERSION = "0.1.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}

logger = logging.getLogger(__name__)

router = APIRouter()


class DocumentInput(BaseModel):
    content: str
    title: str | None = None


class IndexRequest(BaseModel):
    documents: list[DocumentInput]


class DocumentResult(BaseModel):
    filename: str
    status: str
    error: str | None = None


class IndexResponse(BaseModel):
    results: list[DocumentResult]
    index_name: str | None = None
    download_url: str | None = None


class QueryRequest(BaseModel):
    query: str
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1, le=MAX_TOP_K)
    index: str


class SearchHitResult(BaseModel):
    title: str
    content: str
    score: float


class QueryResponse(BaseModel):
    hits: list[SearchHitResult]
    error: str | None = None


def get_server_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_storage(request: Request) -> IndexStorage:
    return request.app.state.storage


def get_packager(request: Request) -> ArchivePackager:
    return request.app.state.packager


async def _upload_item(value: UploadFile | str) -> UploadItem:
    if isinstance(value, str):
        return UploadItem(filename=None, content_type=None, data=value.encode("utf-8"))

    try:
        data = await value.read()
    except OSError as exc:
        return UploadItem(
            filename=value.filename,
            content_type=value.content_type,
            read_error=str(exc),
        )
    return UploadItem(filename=value.filename, content_type=value.content_type, data=data)


async def _decode_multipart(request: Request) -> DecodedBatch:
    try:
        async with request.form() as form:
            items = [await _upload_item(value) for _, value in form.multi_items()]
    except (MultiPartException, StarletteHTTPException, ValueError) as exc:
        logger.error("Failed to parse multipart request: %s", exc)
        return rejected_request(INVALID_MULTIPART_ERROR)

    return decode_upload(items)


async def _decode_json(request: Request) -> DecodedBatch:
    try:
        payload = IndexRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        logger.error("Failed to parse JSON request: %s", exc)
        return rejected_request(INVALID_JSON_ERROR)

    logger.info("Processing JSON batch with %d documents", len(payload.documents))
    return decode_json_batch(
        Document(content=item.content, title=item.title) for item in payload.documents
    )


def _to_results(outcomes: Sequence[DocumentOutcome]) -> list[DocumentResult]:
    return [
        DocumentResult(filename=outcome.filename, status=outcome.status, error=outcome.error)
        for outcome in outcomes
    ]


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/v1/index", response_model_exclude_none=True)
async def index_documents(
    request: Request,
    config: Annotated[ServerConfig, Depends(get_server_config)],
    storage: Annotated[IndexStorage, Depends(get_storage)],
) -> IndexResponse:
    content_type = request.headers.get("content-type", "")
    logger.info("Received document indexing request: content_type=%s", content_type)

    request_type = media_type(content_type)
    if request_type == "multipart/form-data":
        batch = await _decode_multipart(request)
    elif request_type == "application/json":
        batch = await _decode_json(request)
    else:
        logger.warning("Unsupported content type: %s", content_type)
        batch = rejected_request(UNSUPPORTED_CONTENT_TYPE_ERROR)

    if batch.rejected:
        return IndexResponse(results=_to_results(batch.outcomes))

    result = await asyncio.to_thread(
        build_index,
        batch,
        storage,
        memory_budget=config.writer_memory_budget,
    )

    successful = sum(1 for outcome in result.outcomes if outcome.status == "indexed")
    logger.info(
        "Request processing completed: successful=%d failed=%d",
        successful,
        len(result.outcomes) - successful,
    )

    if result.handle is None:
        return IndexResponse(results=_to_results(result.outcomes))

    download_url = config.download_url_prefix.download_url(result.handle.name)
    logger.info("Download URL generated: %s", download_url)
    return IndexResponse(
        results=_to_results(result.outcomes),
        index_name=result.handle.name,
        download_url=download_url,
    )


@router.post("/v1/search", response_model_exclude_none=True)
def search(
    request: QueryRequest,
    storage: Annotated[IndexStorage, Depends(get_storage)],
) -> QueryResponse:
    result = search_index(
        SearchQuery(raw_query=request.query, index_name=request.index, top_k=request.top_k),
        storage,
    )
    return QueryResponse(
        hits=[
            SearchHitResult(title=hit.title, content=hit.content, score=hit.score)
            for hit in result.hits
        ],
        error=result.error,
    )


@router.get("/v1/files/download/{index_name}")
def download_index_file(
    index_name: str,
    storage: Annotated[IndexStorage, Depends(get_storage)],
    packager: Annotated[ArchivePackager, Depends(get_packager)],
) -> FileResponse:
    logger.info("Received index file download request: %s", index_name)

    try:
        handle = storage.resolve(index_name)
    except (IndexNotFoundError, InvalidIndexNameError) as exc:
        logger.error("Index directory not found: %s", index_name)
        raise HTTPException(status_code=404, detail=f"Index '{index_name}' not found") from exc

    try:
        archive_path = packager.ensure_archive(handle)
    except ArchiveError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    logger.info("Returning archive %s (%d bytes)", archive_path.name, archive_path.stat().st_size)
    return FileResponse(
        archive_path,
        media_type="application/gzip",
        filename=archive_path.name,
        headers=CORS_HEADERS,
    )


def create_app(config: ServerConfig) -> FastAPI:
    app = FastAPI(title="Keyword Search Server", version=APP_VERSION)
    storage = IndexStorage(config.storage_root)
    app.state.config = config
    app.state.storage = storage
    app.state.packager = ArchivePackager(storage)
    app.include_router(router)
    return app


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keyword-search",
        description="Keyword Search Server",
    )
    parser.add_argument(
        "--download-url-prefix",
        default=settings.download_url_prefix,
        help="Download URL prefix, format: http(s)://{IPv4_address}:{port} or http(s)://{domain}:{port}",
    )
    socket_group = parser.add_mutually_exclusive_group()
    socket_group.add_argument(
        "--socket-addr",
        default=None,
        help="Socket address to bind, for example 0.0.0.0:9069",
    )
    socket_group.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to bind on all IPv4 interfaces",
    )
    parser.add_argument(
        "--storage-dir",
        default=settings.storage_dir,
        help="Directory holding one sub-directory per index",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def build_server_config(
    args: argparse.Namespace,
    settings: Settings,
) -> tuple[ServerConfig, BindAddress]:
    if args.socket_addr is not None:
        bind_address = parse_socket_addr(args.socket_addr)
    else:
        bind_address = BindAddress(host="0.0.0.0", port=args.port)

    download_url_prefix = resolve_download_url_prefix(args.download_url_prefix, bind_address)
    config = ServerConfig(
        storage_root=Path(args.storage_dir).resolve(),
        download_url_prefix=download_url_prefix,
        writer_memory_budget=settings.writer_memory_budget,
    )
    return config, bind_address


def run(argv: Sequence[str] | None = None) -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    parser = _build_parser(settings)
    args = parser.parse_args(argv)
    logger.info("Server starting, command line arguments parsed")

    try:
        config, bind_address = build_server_config(args, settings)
    except StartupError as exc:
        logger.error("Startup failed: %s", exc)
        raise SystemExit(1) from exc

    logger.info("download_url_prefix: %s", config.download_url_prefix)
    logger.info("Index storage: %s", config.storage_root)
    logger.info("Binding to address: %s", bind_address)

    import uvicorn

    uvicorn.run(create_app(config), host=bind_address.host, port=bind_address.port, log_config=None)


if __name__ == "__main__":
    run()

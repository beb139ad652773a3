from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from keyword_search.config import DownloadUrlPrefix, ServerConfig, get_settings
from keyword_search.main import create_app
from keyword_search.services.search import IndexStorage


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "index_storage"


@pytest.fixture
def storage(storage_root: Path) -> IndexStorage:
    return IndexStorage(storage_root)


@pytest.fixture
def server_config(storage_root: Path) -> ServerConfig:
    return ServerConfig(
        storage_root=storage_root,
        download_url_prefix=DownloadUrlPrefix.parse("http://localhost:9069"),
    )


@pytest.fixture
def client(server_config: ServerConfig) -> Iterator[TestClient]:
    with TestClient(create_app(server_config)) as test_client:
        yield test_client

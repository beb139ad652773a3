from pathlib import Path

from fastapi.testclient import TestClient


def test_index_json_batch_returns_outcomes_and_download_url(
    client: TestClient,
    storage_root: Path,
) -> None:
    response = client.post(
        "/v1/index",
        json={
            "documents": [
                {"content": "the cat sat", "title": "A"},
                {"content": "  ", "title": "B"},
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["results"] == [
        {"filename": "A", "status": "indexed"},
        {"filename": "B", "status": "failed", "error": "Empty content is not allowed"},
    ]
    index_name = body["index_name"]
    assert index_name.startswith("index-")
    assert body["download_url"] == f"http://localhost:9069/v1/files/download/{index_name}"
    assert (storage_root / index_name).is_dir()


def test_index_json_without_title_reports_unknown(client: TestClient) -> None:
    response = client.post("/v1/index", json={"documents": [{"content": "solo"}]})

    assert response.status_code == 200
    assert response.json()["results"] == [{"filename": "Unknown", "status": "indexed"}]


def test_index_multipart_upload(client: TestClient) -> None:
    response = client.post(
        "/v1/index",
        files=[
            ("file", ("notes.txt", b"alpha notes", "text/plain")),
            ("file", ("readme.md", b"# beta readme", "text/markdown")),
            ("file", ("photo.png", b"\x89PNG\r\n", "image/png")),
            ("file", ("blob.bin", b"gamma bytes", "application/octet-stream")),
            ("file", ("latin1.txt", b"caf\xe9", "text/plain")),
            ("file", ("empty.txt", b"   ", "text/plain")),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["results"] == [
        {"filename": "notes.txt", "status": "indexed"},
        {"filename": "readme.md", "status": "indexed"},
        {
            "filename": "photo.png",
            "status": "failed",
            "error": "Unsupported file type. Only .txt and .md files are allowed",
        },
        {"filename": "blob.bin", "status": "indexed"},
        {"filename": "latin1.txt", "status": "failed", "error": "Invalid UTF-8 content"},
        {"filename": "empty.txt", "status": "failed", "error": "Empty content is not allowed"},
    ]
    assert body["index_name"].startswith("index-")
    assert body["download_url"].endswith(body["index_name"])


def test_unsupported_upload_never_reaches_the_index(client: TestClient) -> None:
    index_response = client.post(
        "/v1/index",
        files=[
            ("file", ("page.html", b"<p>zebra</p>", "text/html")),
            ("file", ("notes.txt", b"ordinary notes", "text/plain")),
        ],
    )
    index_name = index_response.json()["index_name"]

    response = client.post("/v1/search", json={"query": "zebra", "index": index_name})

    assert response.json() == {"hits": []}


def test_unsupported_content_type_creates_no_index(
    client: TestClient,
    storage_root: Path,
) -> None:
    response = client.post(
        "/v1/index",
        content=b"plain body",
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "results": [
            {"filename": "unknown", "status": "failed", "error": "Unsupported content type"}
        ]
    }
    assert not storage_root.exists() or not any(storage_root.iterdir())


def test_malformed_json_creates_no_index(client: TestClient, storage_root: Path) -> None:
    response = client.post(
        "/v1/index",
        content=b'{"documents": [',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "results": [
            {"filename": "unknown", "status": "failed", "error": "Failed to parse JSON request"}
        ]
    }
    assert not storage_root.exists() or not any(storage_root.iterdir())


def test_json_with_wrong_shape_is_rejected(client: TestClient) -> None:
    response = client.post("/v1/index", json={"docs": [{"content": "x"}]})

    assert response.json()["results"][0]["error"] == "Failed to parse JSON request"


def test_malformed_multipart_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/v1/index",
        content=b"garbage",
        headers={"Content-Type": "multipart/form-data"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "results": [
            {
                "filename": "unknown",
                "status": "failed",
                "error": "Failed to parse multipart request",
            }
        ]
    }


def test_index_failure_returns_outcomes_without_link(
    client: TestClient,
    storage_root: Path,
) -> None:
    storage_root.parent.mkdir(parents=True, exist_ok=True)
    storage_root.write_text("not a directory", encoding="utf-8")

    response = client.post(
        "/v1/index",
        json={"documents": [{"content": "some text", "title": "T"}]},
    )

    assert response.status_code == 200
    assert response.json() == {"results": [{"filename": "T", "status": "indexed"}]}


def test_index_json_ignores_unknown_document_fields(client: TestClient) -> None:
    response = client.post(
        "/v1/index",
        json={
            "documents": [{"content": "the cat sat", "title": "A", "id": 7}],
            "source": "crawler",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["results"] == [{"filename": "A", "status": "indexed"}]

    search = client.post("/v1/search", json={"query": "cat", "index": body["index_name"]})

    assert [hit["title"] for hit in search.json()["hits"]] == ["A"]


def test_index_json_keeps_explicit_empty_title(client: TestClient) -> None:
    response = client.post("/v1/index", json={"documents": [{"content": "dog", "title": ""}]})

    body = response.json()
    assert body["results"] == [{"filename": "", "status": "indexed"}]

    search = client.post("/v1/search", json={"query": "dog", "index": body["index_name"]})

    assert search.json()["hits"][0]["title"] == ""

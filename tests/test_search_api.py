import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def index_name(client: TestClient) -> str:
    response = client.post(
        "/v1/index",
        json={
            "documents": [
                {"content": "the cat sat", "title": "A"},
                {"content": "  ", "title": "B"},
                {"content": "predictive maintenance for factories", "title": "Ops"},
            ]
        },
    )
    assert response.status_code == 200
    return response.json()["index_name"]


def test_search_returns_indexed_document(client: TestClient, index_name: str) -> None:
    response = client.post("/v1/search", json={"query": "cat", "top_k": 1, "index": index_name})

    assert response.status_code == 200
    body = response.json()
    assert "error" not in body
    assert len(body["hits"]) == 1
    hit = body["hits"][0]
    assert hit["title"] == "A"
    assert hit["content"] == "the cat sat"
    assert hit["score"] > 0


def test_search_top_k_defaults_to_five(client: TestClient) -> None:
    documents = [{"content": f"shared token number {i}", "title": f"doc-{i}"} for i in range(7)]
    index_name = client.post("/v1/index", json={"documents": documents}).json()["index_name"]

    response = client.post("/v1/search", json={"query": "shared", "index": index_name})

    assert response.status_code == 200
    assert len(response.json()["hits"]) == 5


def test_search_unknown_index_returns_error(client: TestClient) -> None:
    response = client.post("/v1/search", json={"query": "cat", "index": "index-does-not-exist"})

    assert response.status_code == 200
    assert response.json() == {
        "hits": [],
        "error": "Index 'index-does-not-exist' does not exist",
    }


def test_search_parse_error_returns_error(client: TestClient, index_name: str) -> None:
    response = client.post(
        "/v1/search",
        json={"query": "cat OR nofield:dog", "index": index_name},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["hits"] == []
    assert body["error"].startswith("Failed to parse query")


def test_search_validates_top_k(client: TestClient, index_name: str) -> None:
    response = client.post("/v1/search", json={"query": "cat", "top_k": 0, "index": index_name})

    assert response.status_code == 422


def test_search_requires_index_field(client: TestClient) -> None:
    response = client.post("/v1/search", json={"query": "cat"})

    assert response.status_code == 422


def test_search_with_top_k_above_document_count(client: TestClient, index_name: str) -> None:
    response = client.post("/v1/search", json={"query": "cat", "top_k": 1000, "index": index_name})

    assert response.status_code == 200
    assert [hit["title"] for hit in response.json()["hits"]] == ["A"]


def test_search_rejects_huge_top_k_and_keeps_serving(client: TestClient, index_name: str) -> None:
    for top_k in (10**12, 2**64):
        response = client.post(
            "/v1/search",
            json={"query": "cat", "top_k": top_k, "index": index_name},
        )
        assert response.status_code == 422

    response = client.post("/v1/search", json={"query": "cat", "top_k": 1, "index": index_name})

    assert response.status_code == 200
    assert response.json()["hits"][0]["title"] == "A"


def test_search_ignores_unknown_request_fields(client: TestClient, index_name: str) -> None:
    response = client.post(
        "/v1/search",
        json={"query": "cat", "index": index_name, "highlight": True},
    )

    assert response.status_code == 200
    assert response.json()["hits"][0]["content"] == "the cat sat"

"""API integration tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChatModel
from knowbase.api import dependencies as deps
from knowbase.app import app


@pytest.fixture
def chat() -> FakeChatModel:
    model = FakeChatModel(reply="Apples are red.")
    deps._CHAT_MODEL_FACTORY = lambda model_name: model
    return model


@pytest.fixture
def client(chat: FakeChatModel) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _create_session(client: TestClient, name: str = "Fruit") -> str:
    resp = client.post("/sessions", json={"name": name})
    assert resp.status_code == 201
    return resp.json()["id"]


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_session_crud(client: TestClient) -> None:
    session_id = _create_session(client)
    listed = client.get("/sessions").json()
    assert [item["id"] for item in listed] == [session_id]
    assert listed[0]["model"] == "gpt-4o-mini"

    resp = client.patch(f"/sessions/{session_id}", json={"name": "Renamed"})
    assert resp.status_code == 200
    assert resp.json()["name"] == "Renamed"

    assert client.delete(f"/sessions/{session_id}").status_code == 200
    assert client.get("/sessions").json() == []
    assert client.delete(f"/sessions/{session_id}").status_code == 404
    assert client.patch(f"/sessions/{session_id}", json={"name": "x"}).status_code == 404


def test_import_index_and_query_flow(tmp_path: Path, client: TestClient, chat: FakeChatModel) -> None:
    session_id = _create_session(client)
    apples = tmp_path / "a.txt"
    apples.write_text("apples are red")
    bananas = tmp_path / "b.md"
    bananas.write_text("# Bananas\n\nbananas are yellow")

    for path in (apples, bananas):
        resp = client.post(f"/sessions/{session_id}/resources", json={"path": str(path)})
        assert resp.status_code == 201
        assert resp.json()["report"]["new"] == 1
        assert resp.json()["resource"]["indexed"] is True

    resources = client.get(f"/sessions/{session_id}/resources", params={"details": True}).json()
    assert [item["name"] for item in resources] == ["a.txt", "b.md"]
    assert resources[0]["size_label"] == "14 chars"

    index_resp = client.post(f"/sessions/{session_id}/index")
    assert index_resp.status_code == 200
    assert index_resp.json()["report"]["new"] == 0
    assert [e["message"] for e in index_resp.json()["events"]] == ["All files already indexed"]

    query_resp = client.post(f"/sessions/{session_id}/query", json={"message": "what color are apples"})
    assert query_resp.status_code == 200
    assert query_resp.json() == {"answer": "Apples are red.", "sources": ["a.txt"]}
    assert "apples are red" in chat.requests[0][-1].text

    history = client.get(f"/sessions/{session_id}/history").json()["messages"]
    assert [(m["is_user"], m["content"], m["sources"]) for m in history] == [
        (True, "what color are apples", []),
        (False, "Apples are red.", ["a.txt"]),
    ]

    delete_resp = client.delete(f"/sessions/{session_id}/resources/a.txt")
    assert delete_resp.status_code == 200
    assert delete_resp.json()["deleted"] == 1

    clear_resp = client.post(f"/sessions/{session_id}/clear")
    assert clear_resp.json()["deleted"] == 2
    assert client.get(f"/sessions/{session_id}/history").json()["messages"] == []


def test_resource_errors_map_to_status_codes(tmp_path: Path, client: TestClient) -> None:
    session_id = _create_session(client)
    doc = tmp_path / "a.txt"
    doc.write_text("alpha")
    image = tmp_path / "pic.png"
    image.write_bytes(b"\x89PNG")

    assert client.post(f"/sessions/{session_id}/resources", json={"path": str(doc)}).status_code == 201
    assert client.post(f"/sessions/{session_id}/resources", json={"path": str(doc)}).status_code == 409
    assert client.post(f"/sessions/{session_id}/resources", json={"path": str(image)}).status_code == 400
    missing = client.post(f"/sessions/{session_id}/resources", json={"path": str(tmp_path / "none.txt")})
    assert missing.status_code == 404
    assert client.delete(f"/sessions/{session_id}/resources/none.txt").status_code == 404


def test_show_resource_content(tmp_path: Path, client: TestClient) -> None:
    session_id = _create_session(client)
    doc = tmp_path / "a.txt"
    doc.write_text("apples are red")
    client.post(f"/sessions/{session_id}/resources", json={"path": str(doc)})

    resp = client.get(f"/sessions/{session_id}/resources/a.txt")

    assert resp.status_code == 200
    assert resp.json() == {
        "name": "a.txt",
        "content": "apples are red",
        "characters": 14,
        "size_label": "14 chars",
    }
    assert client.get(f"/sessions/{session_id}/resources/none.txt").status_code == 404


def test_query_validation_and_unknown_session(client: TestClient) -> None:
    session_id = _create_session(client)
    assert client.post(f"/sessions/{session_id}/query", json={"message": "   "}).status_code == 400
    assert client.post("/sessions/ses_missing/query", json={"message": "hi"}).status_code == 404
    assert client.get("/sessions/ses_missing/history").status_code == 404


def test_metrics_endpoint(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "knb_requests_total" in resp.text

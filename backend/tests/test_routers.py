"""Tests for the HTTP backend."""

import asyncio
import json

import httpx
import pytest
from conftest import PS_BODY, TAGS_BODY, FakeDaemon, json_response, refuse_connection
from fastapi.testclient import TestClient

from modeldeck import create_app
from modeldeck.services.control import ModelControl


def online_daemon() -> FakeDaemon:
    daemon = FakeDaemon()
    daemon.on("GET", "/api/version", json_response({"version": "0.5.7"}))
    daemon.on("GET", "/api/tags", json_response(TAGS_BODY))
    daemon.on("GET", "/api/ps", json_response(PS_BODY))
    return daemon


@pytest.fixture
def daemon() -> FakeDaemon:
    return online_daemon()


@pytest.fixture
def client(daemon, settings):
    control = ModelControl(settings, transport=httpx.MockTransport(daemon))
    with TestClient(create_app(control)) as test_client:
        test_client.post("/daemon/status/refresh")
        yield test_client


def read_sse(client: TestClient, url: str) -> list:
    events = []
    with client.stream("GET", url) as res:
        assert res.headers["content-type"].startswith("text/event-stream")
        for line in res.iter_lines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))
    return events


class TestStatusRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_status(self, client):
        assert client.get("/daemon/status").json() == {"online": True, "version": "0.5.7"}

    def test_refresh_detects_offline(self, client, daemon):
        daemon.on("GET", "/api/version", refuse_connection)

        res = client.post("/daemon/status/refresh")

        assert res.json() == {"online": False, "version": None}


class TestRegistryRoutes:
    def test_dashboard_state(self, client):
        state = client.get("/models/").json()

        assert state["online"] is True
        assert state["installed"][0]["id"] == "llama3.2:1b"
        assert state["installed"][0]["size_bytes"] == 1363148800
        assert state["running"][0]["size_vram_bytes"] == 2400000000
        assert state["pulls"] == []

    def test_installed_and_running(self, client):
        assert [m["id"] for m in client.get("/models/installed").json()] == ["llama3.2:1b"]
        assert [m["id"] for m in client.get("/models/running").json()] == ["llama3.2:1b"]

    def test_load(self, client, daemon):
        daemon.on("POST", "/api/generate", json_response({"done": True}))

        res = client.post("/models/load", json={"model_id": "llama3.2:1b"})

        assert res.json() == {"model_id": "llama3.2:1b", "success": True, "error": None}

    def test_delete_rejected_reports_reason(self, client, daemon):
        daemon.on("DELETE", "/api/delete", json_response({"error": "not found"}, status_code=404))

        body = client.post("/models/delete", json={"model_id": "ghost"}).json()

        assert body["success"] is False
        assert "404" in body["error"]

    def test_empty_model_id_rejected(self, client):
        assert client.post("/models/unload", json={"model_id": ""}).status_code == 422

    def test_commands_need_daemon_online(self, client, daemon):
        daemon.on("GET", "/api/version", refuse_connection)
        client.post("/daemon/status/refresh")

        assert client.post("/models/load", json={"model_id": "m"}).status_code == 503
        assert client.post("/models/pull", json={"model_id": "m"}).status_code == 503


class TestPullRoutes:
    def test_pull_streams_progress_until_done(self, client, daemon):
        async def body():
            yield b'{"status":"pulling manifest"}\n'
            await asyncio.sleep(0.2)
            yield b'{"status":"pulling 6a07","completed":1,"total":2}\n'
            await asyncio.sleep(0.2)
            yield b'{"status":"success"}\n'

        daemon.on("POST", "/api/pull", lambda request: httpx.Response(200, content=body()))

        res = client.post("/models/pull", json={"model_id": "llama3.2:1b"})
        assert res.status_code == 202

        events = read_sse(client, "/models/pull/progress")
        assert events[-1] == []
        assert any(ops and ops[0]["model_id"] == "llama3.2:1b" for ops in events)
        assert client.get("/models/pull/status").json() == []

    def test_duplicate_pull_conflicts_and_cancel(self, client, daemon):
        async def body():
            yield b'{"status":"pulling","completed":1,"total":2}\n'
            await asyncio.sleep(30)

        daemon.on("POST", "/api/pull", lambda request: httpx.Response(200, content=body()))

        assert client.post("/models/pull", json={"model_id": "big"}).status_code == 202
        assert client.post("/models/pull", json={"model_id": "big"}).status_code == 409
        assert [op["model_id"] for op in client.get("/models/pull/status").json()] == ["big"]

        assert client.post("/models/pull/cancel", json={"model_id": "big"}).status_code == 200
        assert read_sse(client, "/models/pull/progress")[-1] == []
        assert client.post("/models/pull/cancel", json={"model_id": "big"}).status_code == 404


def test_generate_route(client, daemon):
    async def body():
        yield b'{"response":"Hi","done":false}\n{"response":"!","done":true}\n'

    daemon.on("POST", "/api/generate", lambda request: httpx.Response(200, content=body()))

    res = client.post("/models/generate", json={"model_id": "m", "prompt": "hello"})

    assert res.json() == {"model_id": "m", "response": "Hi!"}

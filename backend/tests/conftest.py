"""Shared fixtures: a scripted stand-in for the Ollama HTTP API."""

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from modeldeck.config import Settings
from modeldeck.services.transport import DaemonTransport

BASE_URL = "http://ollama.test:11434"

Handler = Callable[[httpx.Request], httpx.Response]


def json_response(body, status_code: int = 200) -> Handler:
    return lambda request: httpx.Response(status_code, json=body)


def stream_response(*chunks: bytes, status_code: int = 200) -> Handler:
    """Serve ``chunks`` as separate reads of a streamed body."""

    async def body():
        for chunk in chunks:
            yield chunk

    return lambda request: httpx.Response(status_code, content=body())


def refuse_connection(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class FakeDaemon:
    """Routes requests by (method, path) and records every request seen."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path == path
        ]

    def body(self, request: httpx.Request) -> dict:
        return json.loads(request.content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        return handler(request)


TAGS_BODY = {
    "models": [
        {
            "name": "llama3.2:1b",
            "model": "llama3.2:1b",
            "modified_at": "2024-10-01T09:15:42.123456789-07:00",
            "size": 1363148800,
            "digest": "baf6a787fdffd633537aa2eb51cfd54cb93ff08e28040095462bb63daf552878",
            "details": {
                "format": "gguf",
                "family": "llama",
                "parameter_size": "1.2B",
                "quantization_level": "Q8_0",
            },
        }
    ]
}

PS_BODY = {
    "models": [
        {
            "name": "llama3.2:1b",
            "model": "llama3.2:1b",
            "size": 2500000000,
            "size_vram": 2400000000,
            "digest": "baf6a787fdff",
            "expires_at": "2024-10-01T09:25:42.987654321-07:00",
        }
    ]
}


@pytest.fixture
def daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
async def transport(daemon):
    t = DaemonTransport(BASE_URL, transport=httpx.MockTransport(daemon))
    yield t
    await t.aclose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ollama_base_url=BASE_URL,
        poll_interval_seconds=60.0,
        status_timeout=1.0,
    )

"""
HTTP transport to a local model daemon.

One ``DaemonTransport`` per daemon target. It owns an ``httpx.AsyncClient``
bound to the target's base URL and turns every failure into a ``DaemonError``:

    DaemonUnreachableError   connection refused, DNS, timeout, dropped stream
    DaemonRequestError       the daemon answered with a non-2xx status
    DaemonDecodeError        the body is not the JSON shape we expect

These never leave the client layer; the services built on top convert them
into plain values (offline flags, empty lists, booleans).
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class DaemonError(Exception):
    """Base class for failures talking to the model daemon."""


class DaemonUnreachableError(DaemonError):
    """The daemon could not be reached or the connection dropped."""


class DaemonRequestError(DaemonError):
    """The daemon is up but rejected the request."""

    def __init__(self, method: str, path: str, status_code: int):
        super().__init__(f"{method} {path} returned HTTP {status_code}")
        self.status_code = status_code


class DaemonDecodeError(DaemonError):
    """The daemon's response did not match the expected schema."""


class DaemonTransport:
    def __init__(
        self,
        base_url: str,
        timeout: float | None = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        try:
            res = await self._client.request(method, path, json=json, timeout=timeout)
        except httpx.HTTPError as e:
            raise DaemonUnreachableError(f"{method} {path} failed: {e!r}") from e
        if not res.is_success:
            raise DaemonRequestError(method, path, res.status_code)
        return res

    async def get_json(
        self,
        path: str,
        schema: type[SchemaT],
        *,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> SchemaT:
        """GET ``path`` and validate the body against ``schema``."""
        res = await self.request("GET", path, timeout=timeout)
        try:
            return schema.model_validate_json(res.content)
        except ValidationError as e:
            raise DaemonDecodeError(f"GET {path}: {e}") from e

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed response; read errors inside the block become
        ``DaemonUnreachableError`` and closing the block aborts the transfer."""
        try:
            async with self._client.stream(
                method, path, json=json, timeout=timeout
            ) as res:
                if not res.is_success:
                    raise DaemonRequestError(method, path, res.status_code)
                yield res
        except httpx.HTTPError as e:
            raise DaemonUnreachableError(f"{method} {path} failed: {e!r}") from e

    async def aclose(self) -> None:
        await self._client.aclose()

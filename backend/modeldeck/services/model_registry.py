"""
Installed and resident model lists for one daemon.

Mutations are fire-and-forget: load/unload/delete report only whether the
daemon accepted the call, and callers re-poll the lists to see the effect.
The daemon evicts and unloads on its own schedule, so a fresh fetch is the
only reliable view.
"""
from __future__ import annotations

import asyncio
import logging

from modeldeck.models.daemon import (
    InstalledModel,
    ProcessResponse,
    RunningModel,
    TagsResponse,
)
from modeldeck.services.transport import DaemonError, DaemonTransport

logger = logging.getLogger(__name__)

UNLOAD_KEEP_ALIVE = "0"


class ModelRegistry:
    def __init__(self, transport: DaemonTransport, load_keep_alive: str = "10m"):
        self._transport = transport
        self._load_keep_alive = load_keep_alive
        self.installed: list[InstalledModel] = []
        self.running: list[RunningModel] = []
        self.last_error: DaemonError | None = None

    async def list_installed(self) -> list[InstalledModel]:
        try:
            body = await self._transport.get_json("/api/tags", TagsResponse)
        except DaemonError as e:
            self._record_failure("list installed models", e)
            return []
        self.last_error = None
        self.installed = body.models
        return list(body.models)

    async def list_running(self) -> list[RunningModel]:
        try:
            body = await self._transport.get_json("/api/ps", ProcessResponse)
        except DaemonError as e:
            self._record_failure("list running models", e)
            return []
        self.last_error = None
        self.running = body.models
        return list(body.models)

    async def refresh(self) -> None:
        await asyncio.gather(self.list_installed(), self.list_running())

    async def load_into_memory(self, model_id: str) -> bool:
        return await self._keep_alive(model_id, self._load_keep_alive)

    async def unload_from_memory(self, model_id: str) -> bool:
        return await self._keep_alive(model_id, UNLOAD_KEEP_ALIVE)

    async def delete(self, model_id: str) -> bool:
        try:
            await self._transport.request(
                "DELETE", "/api/delete", json={"name": model_id}
            )
        except DaemonError as e:
            self._record_failure(f"delete {model_id}", e)
            return False
        self.last_error = None
        self.installed = [m for m in self.installed if m.id != model_id]
        logger.info("Deleted model %s", model_id)
        return True

    def is_installed(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.installed)

    def is_running(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.running)

    async def _keep_alive(self, model_id: str, keep_alive: str) -> bool:
        # An empty prompt only (re)schedules residency; nothing is generated.
        payload = {"model": model_id, "prompt": "", "keep_alive": keep_alive}
        try:
            await self._transport.request("POST", "/api/generate", json=payload)
        except DaemonError as e:
            self._record_failure(f"set keep_alive={keep_alive} on {model_id}", e)
            return False
        self.last_error = None
        return True

    def _record_failure(self, action: str, error: DaemonError) -> None:
        self.last_error = error
        logger.warning("Failed to %s: %s", action, error)

from __future__ import annotations

import logging

import httpx

from modeldeck.config import Settings
from modeldeck.models.daemon import (
    DaemonStatus,
    DashboardState,
    ModelActionResult,
)
from modeldeck.services.generation import TextGenerator
from modeldeck.services.model_registry import ModelRegistry
from modeldeck.services.pull_coordinator import ProgressCallback, PullCoordinator
from modeldeck.services.status_monitor import OFFLINE, PollingHandle, StatusMonitor
from modeldeck.services.transport import DaemonTransport

logger = logging.getLogger(__name__)


class ModelControl:
    """Everything the dashboard needs for one daemon target.

    Publishes the online flag from polling, refreshes the registry when the
    daemon comes back, and re-polls after every load/unload/delete.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.transport = DaemonTransport(
            settings.ollama_base_url,
            timeout=settings.request_timeout,
            transport=transport,
        )
        self.monitor = StatusMonitor(self.transport, timeout=settings.status_timeout)
        self.registry = ModelRegistry(
            self.transport, load_keep_alive=settings.load_keep_alive
        )
        self.pulls = PullCoordinator(
            self.transport, registry=self.registry, timeout=settings.pull_timeout
        )
        self.generator = TextGenerator(self.transport, timeout=settings.pull_timeout)
        self.status: DaemonStatus = OFFLINE
        self._polling: PollingHandle | None = None

    # --- Lifecycle ---

    def start(self) -> None:
        if self._polling is None:
            self._polling = self.monitor.start_polling(
                self.settings.poll_interval_seconds, self._on_status_change
            )
        else:
            self._polling.start()

    def stop(self) -> None:
        if self._polling is not None:
            self._polling.stop()

    async def aclose(self) -> None:
        self.stop()
        self.pulls.cancel_all()
        await self.pulls.wait_idle()
        await self.transport.aclose()

    # --- Status ---

    async def refresh_status(self) -> DaemonStatus:
        status = await self.monitor.check_status()
        if status != self.status:
            await self._on_status_change(status)
        return self.status

    async def _on_status_change(self, status: DaemonStatus) -> None:
        came_online = status.online and not self.status.online
        if status.online != self.status.online:
            logger.info(
                "Daemon at %s is %s",
                self.transport.base_url,
                f"online (version {status.version})" if status.online else "offline",
            )
        self.status = status
        if came_online:
            await self.registry.refresh()

    # --- Commands ---

    async def load(self, model_id: str) -> ModelActionResult:
        ok = await self.registry.load_into_memory(model_id)
        result = self._action_result(model_id, ok)
        await self.registry.list_running()
        return result

    async def unload(self, model_id: str) -> ModelActionResult:
        ok = await self.registry.unload_from_memory(model_id)
        result = self._action_result(model_id, ok)
        await self.registry.list_running()
        return result

    async def delete(self, model_id: str) -> ModelActionResult:
        ok = await self.registry.delete(model_id)
        result = self._action_result(model_id, ok)
        await self.registry.list_installed()
        return result

    def _action_result(self, model_id: str, ok: bool) -> ModelActionResult:
        # Must run before the next await: registry.last_error is shared.
        error = self.registry.last_error
        return ModelActionResult(
            model_id=model_id,
            success=ok,
            error=None if ok or error is None else str(error),
        )

    async def pull(
        self, model_id: str, on_progress: ProgressCallback | None = None
    ) -> bool:
        return await self.pulls.pull(model_id, on_progress)

    def start_pull(self, model_id: str) -> bool:
        return self.pulls.start_pull(model_id)

    def cancel_pull(self, model_id: str) -> bool:
        return self.pulls.cancel(model_id)

    async def generate(self, model_id: str, prompt: str) -> str:
        return await self.generator.generate(model_id, prompt)

    def snapshot(self) -> DashboardState:
        return DashboardState(
            online=self.status.online,
            version=self.status.version,
            installed=list(self.registry.installed),
            running=list(self.registry.running),
            pulls=self.pulls.operations(),
        )

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from modeldeck.models.daemon import DaemonStatus, VersionResponse
from modeldeck.services.transport import DaemonError, DaemonTransport

logger = logging.getLogger(__name__)

StatusCallback = Callable[[DaemonStatus], Awaitable[None] | None]

OFFLINE = DaemonStatus(online=False)


class PollingHandle:
    """Owns one recurring status check. ``stop()`` is safe to call repeatedly."""

    def __init__(
        self,
        monitor: StatusMonitor,
        interval_seconds: float,
        on_change: StatusCallback,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._monitor = monitor
        self._interval = interval_seconds
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None
        self.last_status: DaemonStatus | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self.last_status = None
        self._task = asyncio.create_task(self._run(), name="daemon-status-poll")

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            status = await self._monitor.check_status()
            if self.last_status is None or status != self.last_status:
                self.last_status = status
                try:
                    result = self._on_change(status)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Daemon status callback failed")
            await asyncio.sleep(self._interval)


class StatusMonitor:
    def __init__(self, transport: DaemonTransport, timeout: float = 2.0):
        self._transport = transport
        self._timeout = timeout

    async def check_status(self) -> DaemonStatus:
        """Probe ``/api/version``. Any failure means offline."""
        try:
            body = await self._transport.get_json(
                "/api/version", VersionResponse, timeout=self._timeout
            )
        except DaemonError as e:
            logger.debug("Daemon at %s is offline: %s", self._transport.base_url, e)
            return OFFLINE
        return DaemonStatus(online=True, version=body.version)

    def start_polling(
        self, interval_seconds: float, on_change: StatusCallback
    ) -> PollingHandle:
        handle = PollingHandle(self, interval_seconds, on_change)
        handle.start()
        return handle

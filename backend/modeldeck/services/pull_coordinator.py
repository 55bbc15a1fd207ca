"""
Streaming model pulls.

Each pull moves through Idle -> Pulling -> Completed | Failed. Completed and
Failed are not kept: the model's entry leaves the in-flight set as the last
step of the pull, so a failed pull can simply be started again.

Progress arrives as newline-delimited JSON:

    {"status": "pulling manifest"}
    {"status": "pulling 6a0746a1ec1a", "digest": "...", "total": 2019377376, "completed": 241970}
    {"status": "success"}

Records carrying ``total`` produce a percentage; records without it only
update the status text. An ``error`` record means the daemon gave up even
though the HTTP status was 200.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone

from modeldeck.models.daemon import PullOperation, PullStatusRecord
from modeldeck.services.model_registry import ModelRegistry
from modeldeck.services.ndjson import iter_records
from modeldeck.services.transport import DaemonError, DaemonTransport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


@dataclass
class _PullState:
    operation: PullOperation
    task: asyncio.Task[bool] | None = None
    cancel_requested: bool = False
    error: str | None = None


class PullCoordinator:
    def __init__(
        self,
        transport: DaemonTransport,
        registry: ModelRegistry | None = None,
        timeout: float | None = None,
        flush_tail: bool = True,
    ):
        self._transport = transport
        self._registry = registry
        self._timeout = timeout
        self._flush_tail = flush_tail
        self._inflight: dict[str, _PullState] = {}
        self._background: set[asyncio.Task[bool]] = set()

    # --- Read access ---

    def is_pulling(self, model_id: str) -> bool:
        return model_id in self._inflight

    def get(self, model_id: str) -> PullOperation | None:
        state = self._inflight.get(model_id)
        return state.operation.model_copy() if state else None

    def operations(self) -> list[PullOperation]:
        return [s.operation.model_copy() for s in self._inflight.values()]

    # --- Commands ---

    async def pull(
        self, model_id: str, on_progress: ProgressCallback | None = None
    ) -> bool:
        """Pull ``model_id``; resolves True once the stream ends cleanly.

        Returns False straight away, without touching the running pull, if
        the model is already being pulled.
        """
        state = self._reserve(model_id)
        if state is None:
            return False
        return await self._run(state, on_progress)

    def start_pull(
        self, model_id: str, on_progress: ProgressCallback | None = None
    ) -> bool:
        """Run ``pull`` in the background. False if already pulling."""
        state = self._reserve(model_id)
        if state is None:
            return False
        task = asyncio.create_task(
            self._run(state, on_progress), name=f"pull-{model_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    def cancel(self, model_id: str) -> bool:
        """Abort the stream of an in-flight pull; it then resolves False.

        Returns False when there is nothing left to abort, including a pull
        whose transfer already finished and is only refreshing the registry.
        """
        state = self._inflight.get(model_id)
        if state is None or (state.task is not None and state.task.done()):
            return False
        state.cancel_requested = True
        if state.task is not None:
            state.task.cancel()
        return True

    def cancel_all(self) -> None:
        for model_id in list(self._inflight):
            self.cancel(model_id)

    async def wait_idle(self) -> None:
        """Wait for every pull started with ``start_pull`` to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # --- Internals ---

    def _reserve(self, model_id: str) -> _PullState | None:
        # No await between the check and the insert: this is the duplicate guard.
        if model_id in self._inflight:
            logger.info("Pull of %s already in progress, ignoring", model_id)
            return None
        state = _PullState(
            operation=PullOperation(
                model_id=model_id,
                status_text="starting",
                started_at=datetime.now(timezone.utc),
            )
        )
        self._inflight[model_id] = state
        return state

    async def _run(
        self, state: _PullState, on_progress: ProgressCallback | None
    ) -> bool:
        model_id = state.operation.model_id
        try:
            if state.cancel_requested:
                return False
            state.task = asyncio.create_task(
                self._stream(state, on_progress), name=f"pull-stream-{model_id}"
            )
            try:
                ok = await state.task
            except asyncio.CancelledError:
                if not state.cancel_requested:
                    raise
                logger.info("Pull of %s cancelled", model_id)
                return False
            if ok and self._registry is not None:
                await self._registry.list_installed()
            return ok
        finally:
            if self._inflight.get(model_id) is state:
                del self._inflight[model_id]

    async def _stream(
        self, state: _PullState, on_progress: ProgressCallback | None
    ) -> bool:
        model_id = state.operation.model_id
        payload = {"name": model_id, "stream": True}
        logger.info("Pulling %s from %s", model_id, self._transport.base_url)
        try:
            async with self._transport.stream(
                "POST", "/api/pull", json=payload, timeout=self._timeout
            ) as res:
                records = iter_records(
                    res.aiter_bytes(), PullStatusRecord, flush_tail=self._flush_tail
                )
                async with aclosing(records):
                    async for record in records:
                        self._apply(state, record, on_progress)
        except DaemonError as e:
            logger.warning("Pull of %s failed: %s", model_id, e)
            return False

        if state.error is not None:
            logger.warning("Pull of %s failed: %s", model_id, state.error)
            return False
        logger.info("Pull of %s complete", model_id)
        return True

    def _apply(
        self,
        state: _PullState,
        record: PullStatusRecord,
        on_progress: ProgressCallback | None,
    ) -> None:
        op = state.operation
        if record.error is not None:
            state.error = record.error
            op.status_text = record.error
            return
        if record.status:
            op.status_text = record.status
        if record.total is None:
            return
        op.percent = record.percent()
        if on_progress is not None:
            try:
                on_progress(op.status_text, op.percent)
            except Exception:
                logger.exception("Progress callback for %s failed", op.model_id)

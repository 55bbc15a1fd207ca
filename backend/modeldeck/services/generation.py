from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import aclosing

from modeldeck.models.daemon import GenerateChunk
from modeldeck.services.ndjson import iter_records
from modeldeck.services.transport import DaemonError, DaemonTransport

logger = logging.getLogger(__name__)


class TextGenerator:
    def __init__(self, transport: DaemonTransport, timeout: float | None = None):
        self._transport = transport
        self._timeout = timeout

    async def generate(
        self,
        model_id: str,
        prompt: str,
        on_token: Callable[[str], None] | None = None,
    ) -> str:
        """Stream a completion and return the text received.

        On failure the text gathered so far is returned (empty if none).
        """
        payload = {"model": model_id, "prompt": prompt, "stream": True}
        parts: list[str] = []
        try:
            async with self._transport.stream(
                "POST", "/api/generate", json=payload, timeout=self._timeout
            ) as res:
                chunks = iter_records(res.aiter_bytes(), GenerateChunk)
                async with aclosing(chunks):
                    async for chunk in chunks:
                        if chunk.error is not None:
                            logger.warning(
                                "Generation with %s failed: %s", model_id, chunk.error
                            )
                            break
                        if chunk.response:
                            parts.append(chunk.response)
                            if on_token is not None:
                                try:
                                    on_token(chunk.response)
                                except Exception:
                                    logger.exception(
                                        "Token callback for %s failed", model_id
                                    )
                        if chunk.done:
                            break
        except DaemonError as e:
            logger.warning("Generation with %s failed: %s", model_id, e)
        return "".join(parts)

"""
Incremental newline-delimited JSON decoding.

Transport chunks do not line up with records: a chunk may end in the middle
of a line, or in the middle of a multi-byte UTF-8 sequence. The decoder keeps
both kinds of leftovers and only hands out complete lines.
"""
from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class NDJSONDecoder:
    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Consume raw bytes and return every line they complete."""
        self._pending += self._text.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return [line for line in lines if line.strip()]

    def flush(self) -> list[str]:
        """Return the unterminated trailing line, if any, at end of stream."""
        tail = self._pending + self._text.decode(b"", final=True)
        self._pending = ""
        return [tail] if tail.strip() else []


def parse_record(line: str, schema: type[RecordT]) -> RecordT | None:
    """Parse one line, or return None for malformed / non-object lines."""
    try:
        return schema.model_validate_json(line)
    except ValidationError:
        logger.debug("Discarding malformed stream line: %.200s", line)
        return None


async def iter_records(
    chunks: AsyncIterable[bytes],
    schema: type[RecordT],
    *,
    flush_tail: bool = True,
) -> AsyncIterator[RecordT]:
    """Yield parsed records from a byte stream, skipping malformed lines."""
    decoder = NDJSONDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            record = parse_record(line, schema)
            if record is not None:
                yield record
    if flush_tail:
        for line in decoder.flush():
            record = parse_record(line, schema)
            if record is not None:
                yield record

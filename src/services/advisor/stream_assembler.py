"""Reassemble completion text from a server-sent event byte stream.

Transport chunk boundaries are independent of line boundaries, so the
assembler keeps an incremental UTF-8 decoder (a multi-byte character split
across chunks decodes exactly as if it arrived whole) and holds back any line
tail that has not been terminated yet.

Malformed events are expected mid-stream. `extract_line_content` is the single
place where they are ignored: it returns an empty string instead of raising.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Literal

from pydantic import ValidationError

from schemas.completions import DeltaEvent


logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

LineKind = Literal["data", "done", "noise"]


@dataclass(frozen=True, slots=True)
class StreamLine:
    kind: LineKind
    payload: str | None = None


def classify_line(raw_line: str) -> StreamLine:
    """Classify one logical line of the event stream."""
    line = raw_line.strip()
    if not line or not line.startswith(DATA_PREFIX):
        return StreamLine(kind="noise")
    payload = line[len(DATA_PREFIX) :].strip()
    if payload == DONE_SENTINEL:
        return StreamLine(kind="done")
    if not payload:
        return StreamLine(kind="noise")
    return StreamLine(kind="data", payload=payload)


def extract_line_content(raw_line: str) -> str:
    """Return the text carried by one stream line, or "" if it carries none.

    Undecodable payloads are logged at debug level and ignored.
    """
    line = classify_line(raw_line)
    if line.kind != "data" or line.payload is None:
        return ""
    try:
        event = DeltaEvent.model_validate_json(line.payload)
    except ValidationError as exc:
        logger.debug("Ignoring undecodable stream event: %s", exc.error_count())
        return ""
    return "".join(choice.content() for choice in event.choices)


class StreamAssembler:
    """Accumulate delta fragments from arrival-ordered byte chunks.

    The accumulated text is append-only; callers read it through `text` once
    the source is exhausted and `finish()` has flushed the last partial line.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._fragments: list[str] = []
        self._finished = False
        self.chunk_count = 0

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    def feed(self, chunk: bytes) -> None:
        if self._finished:
            raise RuntimeError("StreamAssembler already finished")
        self.chunk_count += 1
        self._buffer += self._decoder.decode(chunk)
        lines = _LINE_BREAK_RE.split(self._buffer)
        # The last element is whatever follows the final terminator: either ""
        # or a partial line that must wait for the next chunk.
        self._buffer = lines.pop()
        for line in lines:
            self._consume(line)

    def finish(self) -> str:
        """Flush the decoder and any residual unterminated line."""
        if not self._finished:
            self._buffer += self._decoder.decode(b"", final=True)
            if self._buffer.strip():
                self._consume(self._buffer)
            self._buffer = ""
            self._finished = True
        return self.text

    def _consume(self, line: str) -> None:
        content = extract_line_content(line)
        if content:
            self._fragments.append(content)


async def assemble_stream(chunks: AsyncIterable[bytes]) -> str:
    """Drain an async byte-chunk source and return the accumulated text."""
    assembler = StreamAssembler()
    async for chunk in chunks:
        assembler.feed(chunk)
    text = assembler.finish()
    logger.debug(
        "Assembled %d characters from %d chunks", len(text), assembler.chunk_count
    )
    return text

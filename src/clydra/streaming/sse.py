"""Incremental decoder for the chat proxy's server-sent-event body.

The proxy frames each payload as a ``data: <json>`` line and ends the
stream with ``data: [DONE]``. Chunks arrive with arbitrary boundaries, so the
decoder keeps both an incomplete UTF-8 sequence and an incomplete line
around until the next chunk completes them.
"""

import codecs
import json
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from typing import Any

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    """One decoded envelope from the chat stream.

    A single envelope may carry several fields at once.
    """

    content: str | None = None
    message_id: str | None = None
    annotations: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    done: bool = False

    @classmethod
    def from_envelope(cls, envelope: dict[str, Any]) -> "StreamEvent":
        content = envelope.get("content")
        message_id = envelope.get("messageId")
        annotations = envelope.get("annotations")
        error = envelope.get("error")
        if isinstance(error, dict):
            error = error.get("message") or json.dumps(error)

        return cls(
            content=content if isinstance(content, str) else None,
            message_id=(
                str(message_id)
                if isinstance(message_id, (str, int)) and not isinstance(message_id, bool)
                else None
            ),
            annotations=[item for item in annotations if isinstance(item, dict)]
            if isinstance(annotations, list) else [],
            error=str(error) if error else None,
        )

    @property
    def is_empty(self) -> bool:
        return (
            not self.content
            and self.message_id is None
            and not self.annotations
            and self.error is None
            and not self.done
        )


class SSEDecoder:
    """Turns raw byte chunks into StreamEvents.

    Lines that do not carry the data prefix are ignored, as are data lines
    whose payload is not a JSON object; one bad line never stops the lines
    after it from being processed.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._done = False

    @property
    def done(self) -> bool:
        """Whether the end-of-stream sentinel has been seen."""
        return self._done

    def feed(self, chunk: bytes) -> Iterator[StreamEvent]:
        """Decode a chunk and yield the events completed by it."""
        if self._done:
            return
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        yield from self._events(lines)

    def flush(self) -> Iterator[StreamEvent]:
        """Process whatever is left once the byte stream has ended."""
        if self._done:
            return
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        yield from self._events(tail.split("\n"))

    def _events(self, lines: list[str]) -> Iterator[StreamEvent]:
        for line in lines:
            event = self._parse_line(line.rstrip("\r"))
            if event is None:
                continue
            yield event
            if event.done:
                self._done = True
                return

    @staticmethod
    def _parse_line(line: str) -> StreamEvent | None:
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]

        if payload.strip() == DONE_SENTINEL:
            return StreamEvent(done=True)

        try:
            envelope = json.loads(payload)
        except ValueError:
            return None
        if not isinstance(envelope, dict):
            return None

        event = StreamEvent.from_envelope(envelope)
        return None if event.is_empty else event


async def iter_events(chunks: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode an async byte stream, stopping after the done sentinel."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
        if decoder.done:
            return
    for event in decoder.flush():
        yield event

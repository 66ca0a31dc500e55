from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Iterator, List, Optional


@dataclass(frozen=True)
class SseMessage:
    data: str
    event: str = "message"
    last_event_id: Optional[str] = None


class SseDecoder:
    """
    Line-oriented `text/event-stream` decoder.

    - `data:` lines accumulate and are joined with newlines
    - a blank line dispatches the pending message
    - lines starting with `:` are comments (server keepalives)
    - `retry:` updates `retry_ms`, `id:` updates `last_event_id`
    """

    def __init__(self) -> None:
        self._data: List[str] = []
        self._event: Optional[str] = None
        self.last_event_id: Optional[str] = None
        self.retry_ms: Optional[int] = None

    def feed(self, line: str) -> Optional[SseMessage]:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry_ms = int(value)
        # Unknown fields are ignored.
        return None

    def _dispatch(self) -> Optional[SseMessage]:
        data, event = self._data, self._event
        self._data = []
        self._event = None
        if not data:
            return None
        return SseMessage(data="\n".join(data), event=event or "message", last_event_id=self.last_event_id)


def decode_sse_lines(lines: Iterable[str], decoder: Optional[SseDecoder] = None) -> Iterator[SseMessage]:
    dec = decoder or SseDecoder()
    for line in lines:
        msg = dec.feed(line)
        if msg is not None:
            yield msg


async def iter_sse_messages(lines: AsyncIterator[str], decoder: Optional[SseDecoder] = None) -> AsyncIterator[SseMessage]:
    dec = decoder or SseDecoder()
    async for line in lines:
        msg = dec.feed(line)
        if msg is not None:
            yield msg

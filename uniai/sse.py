"""
Server-Sent-Events framing.

``EventSourceParser`` is an incremental parser: text is fed in arbitrary
chunks and complete events come out once their terminating blank line has
been seen. ``encode_event`` produces the outgoing ``data: <json>`` frames.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

_LINE_END = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SSEEvent:
    """
    One parsed frame.

    ``type`` is ``"event"`` for data events and ``"reconnect-interval"`` for a
    bare ``retry:`` field.
    """
    type: str
    data: str = ""
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


class EventSourceParser:
    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Drop any partially received line or event."""
        self._buffer = ""
        self._data: List[str] = []
        self._event_type: Optional[str] = None
        self._event_id: Optional[str] = None
        self._pending_cr = False

    def feed(self, chunk: str) -> List[SSEEvent]:
        """Consume a chunk of text and return the events it completed."""
        if self._pending_cr and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._pending_cr = False

        self._buffer += chunk
        events: List[SSEEvent] = []
        while True:
            match = _LINE_END.search(self._buffer)
            if match is None:
                break
            line, rest = self._buffer[:match.start()], self._buffer[match.end():]
            if match.group() == "\r" and not rest:
                # a lone CR at the end may be the first half of CRLF
                self._pending_cr = True
            self._buffer = rest
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event_type = value
        elif field == "id":
            if "\x00" not in value:
                self._event_id = value
        elif field == "retry":
            if value.isdigit():
                return SSEEvent(type="reconnect-interval", retry=int(value))
        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if not self._data:
            self._event_type = None
            return None
        event = SSEEvent(
            type="event",
            data="\n".join(self._data),
            event=self._event_type,
            id=self._event_id,
        )
        self._data = []
        self._event_type = None
        return event


def encode_event(payload: Any) -> bytes:
    """Serialize a payload as one ``data:`` frame followed by a blank line."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")

"""Incremental decoder for the campaign event stream.

Text arrives in arbitrary chunks. Lines are buffered until complete, and a
frame is only interpreted once its `event:` line and the terminating blank
line have both been seen. Partial frames are never surfaced.
"""
import json
import logging

from pydantic import ValidationError

from models.events import StreamEvent, parse_stream_event

logger = logging.getLogger(__name__)


class SseDecoder:
    def __init__(self):
        self._buffer = ""
        self._event: str | None = None
        self._data: list[str] = []

    def feed(self, text: str) -> list[StreamEvent]:
        """Consume a chunk and return every event completed by it, in order."""
        self._buffer += text
        events: list[StreamEvent] = []

        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1:]

            if line == "":
                event = self._dispatch()
                if event is not None:
                    events.append(event)
            elif line.startswith(":"):
                continue
            elif line.startswith("event:"):
                self._event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                self._data.append(line[len("data:"):].lstrip(" "))

        return events

    def _dispatch(self) -> StreamEvent | None:
        name, data = self._event, "\n".join(self._data)
        self._event, self._data = None, []
        if name is None or not data:
            return None

        try:
            payload = json.loads(data)
            return parse_stream_event(name, payload)
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Dropping malformed '%s' frame: %s", name, exc)
            return None

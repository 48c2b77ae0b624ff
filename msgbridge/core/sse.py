"""SSE (Server-Sent Events) encoding and decoding utilities."""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

logger = logging.getLogger("msgbridge")

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)

    @property
    def event(self) -> Optional[str]:
        for line in self.other_lines:
            if line.startswith("event:"):
                return line[6:].strip()
        return None

    def encode(self) -> bytes:
        lines: list[str] = []
        lines.extend(self.other_lines)
        if self.data is not None:
            for item in self.data.split("\n"):
                if item:
                    lines.append(f"data: {item}")
                else:
                    lines.append("data:")
        text = "\n".join(lines) + "\n\n"
        return text.encode("utf-8")


class SSEDecoder:
    def __init__(self) -> None:
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        text = self._decoder.decode(chunk)
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        self._buffer += text
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            if not raw_event.strip():
                continue
            events.append(self._parse_event(raw_event))

        return events

    def flush(self) -> list[SSEEvent]:
        """Parse whatever is left in the buffer as a final event."""
        self._buffer += self._decoder.decode(b"", final=True)
        if not self._buffer.strip():
            self._buffer = ""
            return []
        leftover = self._buffer
        self._buffer = ""
        return [self._parse_event(leftover.strip("\n"))]

    @staticmethod
    def _parse_event(raw: str) -> SSEEvent:
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        return SSEEvent(data=data, other_lines=other_lines)


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format a named SSE event as emitted by the Messages API."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def format_error_event(message: str, error_type: str = "api_error") -> bytes:
    """In-band error event for failures after a stream has started."""
    return format_sse_event(
        "error",
        {"type": "error", "error": {"type": error_type, "message": message}},
    )


async def iter_sse_json(stream: AsyncIterator[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Decode an SSE byte stream into JSON payloads, stopping at ``[DONE]``.

    Lines that are not valid JSON are skipped with a debug log.
    """
    decoder = SSEDecoder()

    def _decode(events: list[SSEEvent]) -> tuple[list[dict[str, Any]], bool]:
        decoded: list[dict[str, Any]] = []
        for event in events:
            if event.data is None:
                continue
            data = event.data.strip()
            if data == DONE_SENTINEL:
                return decoded, True
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"Skipping undecodable SSE payload: {data[:100]}")
                continue
            if isinstance(parsed, dict):
                decoded.append(parsed)
        return decoded, False

    async for chunk in stream:
        payloads, done = _decode(decoder.feed(chunk))
        for payload in payloads:
            yield payload
        if done:
            return

    payloads, _ = _decode(decoder.flush())
    for payload in payloads:
        yield payload


def parse_sse_events(raw: bytes) -> list[dict[str, Any]]:
    """Parse a complete Messages SSE body into ``{"event", "data"}`` dicts."""
    decoder = SSEDecoder()
    events = decoder.feed(raw) + decoder.flush()
    parsed: list[dict[str, Any]] = []
    for event in events:
        if event.data is None:
            continue
        try:
            data = json.loads(event.data)
        except json.JSONDecodeError:
            continue
        parsed.append({"event": event.event or data.get("type"), "data": data})
    return parsed

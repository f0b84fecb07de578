"""
Server-Sent Events helpers shared by the streaming endpoints and the
status-channel client.
"""
import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """Encode one SSE block; dict/list payloads are JSON encoded."""
    payload = data if isinstance(data, str) else json.dumps(data)
    lines = []
    if event:
        lines.append(f"event: {event}")
    for line in payload.split("\n"):
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


def sse_comment(text: str) -> str:
    return f": {text}\n\n"


@dataclass
class SSEMessage:
    data: str
    event: str = "message"
    id: Optional[str] = None

    def json(self) -> Any:
        return json.loads(self.data)


class SSEDecoder:
    """Incremental decoder: feed lines (without terminators), get messages.

    A blank line dispatches the pending message. Comment lines (leading ``:``)
    are ignored, and multiple ``data:`` lines are joined with newlines.
    """

    def __init__(self) -> None:
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None

    def decode(self, line: str) -> Optional[SSEMessage]:
        line = line.rstrip("\r")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        # retry and unknown fields are ignored
        return None

    def flush(self) -> Optional[SSEMessage]:
        return self._dispatch()

    def _dispatch(self) -> Optional[SSEMessage]:
        if not self._data and self._event is None:
            return None
        message = SSEMessage(data="\n".join(self._data), event=self._event or "message", id=self._id)
        self._event = None
        self._data = []
        self._id = None
        return message


def decode_sse_text(text: str) -> List[SSEMessage]:
    """Decode a complete SSE body. Handy for tests and logs."""
    return list(iter_sse_messages(text.split("\n")))


def iter_sse_messages(lines: Iterable[str]):
    decoder = SSEDecoder()
    for line in lines:
        message = decoder.decode(line)
        if message is not None:
            yield message
    tail = decoder.flush()
    if tail is not None:
        yield tail

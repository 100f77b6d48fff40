"""SSE (Server-Sent Events) decoding, encoding and error detection."""

import codecs
import json
from typing import Any, Mapping, Optional

DONE_SENTINEL = "[DONE]"


class SSELineDecoder:
    """Splits a raw byte stream into ``data:`` payloads, one per line.

    The backend feed is newline-delimited; blank lines, comments and
    ``event:`` lines are ignored. Multi-byte characters split across chunks
    are reassembled before decoding.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        payloads: list[str] = []
        for line in lines:
            payload = _data_payload(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a trailing line that never saw its newline."""
        self._buffer += self._decoder.decode(b"", final=True)
        leftover = self._buffer
        self._buffer = ""
        payload = _data_payload(leftover)
        return [payload] if payload is not None else []


def _data_payload(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    return stripped[5:].lstrip()


def format_sse_event(event_type: str, data: Mapping[str, Any]) -> bytes:
    """Format one named SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def describe_stream_error(frame: Mapping[str, Any]) -> Optional[str]:
    """Return a message when a parsed frame reports an upstream error.

    Detects patterns like:
    - {"type": "error", "error": {...}} / {"type": "error", "message": "..."}
    - {"type": "response.failed", "response": {"error": {...}}}
    - Generic: {"error": {...}}
    """
    frame_type = frame.get("type")
    error_obj: Any = frame.get("error")

    if frame_type == "response.failed":
        response = frame.get("response")
        if isinstance(response, Mapping):
            error_obj = response.get("error") or error_obj

    if frame_type in ("error", "response.failed") and not isinstance(error_obj, Mapping):
        message = frame.get("message") or "unknown error"
        return f"SSE stream error: {message}"

    if isinstance(error_obj, Mapping):
        error_msg = error_obj.get("message") or str(error_obj)
        error_type = error_obj.get("type") or error_obj.get("code") or "unknown"
        return f"SSE stream error: {error_msg} (type={error_type})"

    return None

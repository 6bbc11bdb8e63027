"""Reassembly of a chunked response stream into complete messages.

Each connection owns one accumulation buffer. A chunk is appended and the
buffer is decoded repeatedly until it holds only an incomplete prefix.
Responses are newline-terminated and a JSON record never holds a raw newline,
so once the buffer is found incomplete it is not decoded again until a chunk
brings a newline. This keeps a large reply arriving in many small chunks from
being re-parsed from the start on every read.

Bytes that never form a valid value (stray text echoed by the interpreter)
stay in the buffer, since there is no way to tell them apart from the start of
a long message. The buffer is therefore capped at ``max_buffer_bytes``: when a
feed leaves it larger than that, the buffer is discarded and the overflow is
logged as a protocol violation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable

from snail_client.errors import MalformedResponse, ProtocolViolation
from snail_client.protocol import Response, decode_response

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_BYTES = 16 * 1024 * 1024


class StreamReassembler:
    """Per-connection accumulation buffers."""

    def __init__(self, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES):
        self.max_buffer_bytes = max_buffer_bytes
        self._buffers: dict[Hashable, bytearray] = {}
        self._incomplete: set[Hashable] = set()
        self._lock = threading.Lock()

    def feed(self, key: Hashable, chunk: bytes) -> list[Response]:
        """Append a chunk and return every response it completes, in order."""
        responses: list[Response] = []
        with self._lock:
            buffer = self._buffers.setdefault(key, bytearray())
            buffer.extend(chunk)
            if key in self._incomplete and b"\n" not in chunk:
                self._check_size(key, buffer)
                return responses
            self._incomplete.discard(key)

            while buffer:
                try:
                    response, consumed = decode_response(bytes(buffer))
                except MalformedResponse:
                    if not buffer.strip():
                        buffer.clear()
                    else:
                        self._incomplete.add(key)
                    break
                except ProtocolViolation as e:
                    logger.warning("Dropping %d byte(s) from %s: %s", e.consumed, key, e)
                    del buffer[: e.consumed or len(buffer)]
                    continue
                del buffer[:consumed]
                responses.append(response)

            self._check_size(key, buffer)
        return responses

    def _check_size(self, key: Hashable, buffer: bytearray) -> None:
        if len(buffer) > self.max_buffer_bytes:
            violation = ProtocolViolation(
                f"Partial response exceeded {self.max_buffer_bytes} bytes",
                consumed=len(buffer),
            )
            logger.error("Discarding buffer for %s: %s", key, violation)
            buffer.clear()
        if not buffer:
            del self._buffers[key]
            self._incomplete.discard(key)

    def pending(self, key: Hashable) -> bytes:
        """Bytes held for ``key`` that do not yet form a complete response."""
        with self._lock:
            return bytes(self._buffers.get(key, b""))

    def drop(self, key: Hashable) -> None:
        """Forget any partial data held for ``key``."""
        with self._lock:
            self._buffers.pop(key, None)
            self._incomplete.discard(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)

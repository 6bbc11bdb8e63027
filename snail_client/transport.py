"""Socket transport to one interpreter process.

A ``TransportSession`` owns a single TCP connection. Outgoing messages are
written from the caller's thread; incoming bytes are read on a daemon reader
thread and handed to ``on_bytes`` exactly as they arrive, with no framing.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections import deque
from typing import Callable

from snail_client.errors import ConnectionFailed, SessionClosed

logger = logging.getLogger(__name__)
transcript_logger = logging.getLogger("snail_client.transcript")

Connector = Callable[[tuple[str, int], float], socket.socket]


def default_connector(address: tuple[str, int], timeout: float) -> socket.socket:
    return socket.create_connection(address, timeout=timeout)


class TransportSession:
    """Duplex byte stream to one interpreter.

    Usage::

        session = TransportSession("localhost", 10011, on_bytes=handle_chunk)
        session.connect()
        session.send(b'{"ns":["Main"],"reqid":"abcd1234","code":"1+1"}\\n')
        session.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        on_bytes: Callable[[bytes], None],
        on_close: Callable[[], None] | None = None,
        connect_timeout: float = 5.0,
        recv_size: int = 65536,
        transcript_size: int = 500,
        connector: Connector = default_connector,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.host = host
        self.port = port
        self._on_bytes = on_bytes
        self._on_close = on_close
        self._connect_timeout = connect_timeout
        self._recv_size = recv_size
        self._connector = connector
        self._sleep = sleep
        self.transcript: deque[str] = deque(maxlen=transcript_size)
        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None
        self._closing = False
        self._send_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        """Whether the session currently holds an open socket."""
        return self._sock is not None

    def connect(self, max_attempts: int = 5, retry_delay: float = 0.5) -> None:
        """Open the connection, retrying with a fixed delay.

        Raises:
            ConnectionFailed: If every attempt failed.
        """
        if self.is_connected:
            return

        last_error: OSError | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                sock = self._connector((self.host, self.port), self._connect_timeout)
                break
            except OSError as e:
                last_error = e
                logger.debug(
                    "Connect attempt %d/%d to %s:%d failed: %s",
                    attempt,
                    max_attempts,
                    self.host,
                    self.port,
                    e,
                )
                if attempt < max_attempts:
                    self._sleep(retry_delay)
        else:
            raise ConnectionFailed(
                self.host, self.port, max_attempts, str(last_error or "")
            ) from last_error

        # Reads block in the reader thread; only connect honors the timeout.
        sock.settimeout(None)
        with self._state_lock:
            self._sock = sock
            self._closing = False
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(sock,),
            name=f"snail-reader-{self.host}:{self.port}",
            daemon=True,
        )
        self._reader.start()
        logger.info("Connected to interpreter at %s:%d", self.host, self.port)

    def send(self, data: bytes) -> None:
        """Write one encoded message.

        Raises:
            SessionClosed: If the session is not connected.
            ConnectionFailed: If the socket write fails.
        """
        sock = self._sock
        if sock is None:
            raise SessionClosed(f"Not connected to {self.host}:{self.port}")
        try:
            with self._send_lock:
                sock.sendall(data)
        except OSError as e:
            raise ConnectionFailed(self.host, self.port, 1, f"send failed: {e}") from e
        text = data.decode("utf-8", errors="replace").rstrip("\n")
        self.transcript.append(text)
        transcript_logger.debug("%s", text)

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._state_lock:
            sock = self._sock
            self._sock = None
            self._closing = True
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()
        reader = self._reader
        self._reader = None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2.0)
        logger.info("Disconnected from interpreter at %s:%d", self.host, self.port)

    def _read_loop(self, sock: socket.socket) -> None:
        while True:
            try:
                chunk = sock.recv(self._recv_size)
            except OSError as e:
                if not self._closing:
                    logger.warning("Read from %s:%d failed: %s", self.host, self.port, e)
                break
            if not chunk:
                break
            try:
                self._on_bytes(chunk)
            except Exception:
                logger.exception("Failed to handle %d byte(s) from interpreter", len(chunk))

        with self._state_lock:
            remote_closed = not self._closing and self._sock is sock
        if remote_closed:
            logger.warning("Interpreter at %s:%d closed the connection", self.host, self.port)
            if self._on_close is not None:
                self._on_close()

"""Client for one interpreter REPL, and the manager that keeps one per context.

``ReplClient`` wires the protocol pieces together for a single connection:

    send -> registry -> codec -> transport
    transport (reader thread) -> reassembler -> dispatcher -> callbacks

Usage::

    with ReplClient("julia", ClientConfig(port=10011)) as client:
        reqid = client.send("1 + 1", on_success=print)
        value = client.call_sync("2 + 2")
        base = client.names(CacheSlot.BASE_NAMES)
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable
from uuid import uuid4

from snail_client.cache import NameListCache
from snail_client.config import ClientConfig
from snail_client.deferred import (
    Failure,
    RequestRegistry,
    TrackedRequest,
    acknowledge,
    report_failure,
)
from snail_client.dispatch import BusyIndicator, Dispatcher, ErrorViewer, LogHandler
from snail_client.errors import SessionClosed
from snail_client.helpers import (
    INTROSPECTION_QUERIES,
    NO_VALUE,
    CacheSlot,
    NamespaceLike,
    Sentinel,
    namespace_path,
    needs_tmpfile,
)
from snail_client.protocol import encode_request
from snail_client.reassembler import StreamReassembler
from snail_client.sync import call_sync
from snail_client.tempfiles import TempFileStore
from snail_client.transport import Connector, TransportSession, default_connector

logger = logging.getLogger(__name__)

TEARDOWN_MESSAGE = "connection closed"


def _ignore(_: Any) -> None:
    pass


class ReplClient:
    """Protocol engine bound to one interpreter connection."""

    def __init__(
        self,
        name: str = "julia",
        config: ClientConfig | None = None,
        *,
        registry: RequestRegistry | None = None,
        reassembler: StreamReassembler | None = None,
        cache: NameListCache | None = None,
        busy: BusyIndicator | None = None,
        error_viewer: ErrorViewer | None = None,
        tempfiles: TempFileStore | None = None,
        log_handler: LogHandler | None = None,
        connector: Connector = default_connector,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.config = config or ClientConfig()
        self.registry = registry or RequestRegistry()
        self.reassembler = reassembler or StreamReassembler(self.config.max_buffer_bytes)
        self.cache = cache or NameListCache()
        self.tempfiles = tempfiles or TempFileStore()
        self.busy = busy
        self.dispatcher = Dispatcher(
            self.registry,
            busy=busy,
            error_viewer=error_viewer,
            tempfiles=self.tempfiles,
            log_handler=log_handler,
        )
        self.connection_id = self._new_connection_id()
        self.transport = TransportSession(
            self.config.host,
            self.config.port,
            on_bytes=self.on_bytes,
            on_close=self._on_remote_close,
            connect_timeout=self.config.connect_timeout,
            recv_size=self.config.recv_size,
            transcript_size=self.config.transcript_size,
            connector=connector,
            sleep=sleep,
        )
        self._teardown_lock = threading.Lock()

    def __enter__(self) -> ReplClient:
        self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _new_connection_id(self) -> str:
        return f"{self.name}-{uuid4().hex[:12]}"

    @property
    def is_connected(self) -> bool:
        return self.transport.is_connected

    def connect(self) -> None:
        """Connect to the interpreter, retrying per the config.

        Raises:
            ConnectionFailed: If every attempt failed.
        """
        if self.is_connected:
            return
        self.connection_id = self._new_connection_id()
        self.transport.connect(self.config.max_attempts, self.config.retry_delay)

    def on_bytes(self, chunk: bytes) -> None:
        """Feed raw bytes from the interpreter and dispatch what they complete."""
        for response in self.reassembler.feed(self.connection_id, chunk):
            self.dispatcher.dispatch(response)

    def submit(
        self,
        code: str,
        ns: NamespaceLike = None,
        *,
        on_success: Callable[[Any], None] = acknowledge,
        on_failure: Callable[[Failure], None] = report_failure,
        display_error: bool | None = None,
        origin: Any = None,
        display: Any = None,
        use_tmpfile: bool | None = None,
    ) -> TrackedRequest:
        """Register and send an evaluation request; return the tracked request.

        Large bodies (over ``config.inline_limit`` bytes) or any body with
        ``use_tmpfile=True`` are written to a temp file, and the interpreter
        is asked to load that file instead.

        Raises:
            SessionClosed: If the client is not connected.
            ConnectionFailed: If the write fails. The request is retired.
            ValueError: If ``ns`` is not a valid namespace path.
        """
        if not self.is_connected:
            raise SessionClosed(f"REPL {self.name!r} is not connected")
        path = namespace_path(ns)

        tmpfile = None
        body = code
        if use_tmpfile or (use_tmpfile is None and needs_tmpfile(code, self.config.inline_limit)):
            tmpfile = self.tempfiles.create(code, suffix=self.config.tmp_suffix)
            body = self.config.include_template.format(path=json.dumps(str(tmpfile)))

        request = TrackedRequest(
            origin=origin,
            display=display,
            on_success=on_success,
            on_failure=on_failure,
            display_error=self.config.show_errors if display_error is None else display_error,
            tmpfile=tmpfile,
        )
        reqid = self.registry.register(request)
        try:
            if self.busy is not None:
                self.busy.start(origin)
            self.transport.send(encode_request(path, reqid, body))
        except Exception:
            if self.registry.retire(reqid) is not None:
                self.dispatcher.release(request)
                request.abandon()
            raise
        return request

    def send(self, code: str, ns: NamespaceLike = None, **options: Any) -> str:
        """Send an evaluation request and return its id without waiting."""
        return self.submit(code, ns, **options).reqid

    def call_sync(self, code: str, ns: NamespaceLike = None, **options: Any) -> Any:
        """Send a request and block for its result (see ``sync.call_sync``)."""
        return call_sync(self, code, ns, **options)

    def names(self, slot: CacheSlot) -> list[str] | Sentinel:
        """Return the cached name list for ``slot``, querying it on first use.

        Returns ``NO_VALUE`` (uncached) if the query times out or fails.
        """
        slot = CacheSlot(slot)

        def fetch() -> Any:
            result = self.call_sync(
                INTROSPECTION_QUERIES[slot],
                on_success=_ignore,
                display_error=False,
            )
            if result is NO_VALUE:
                return NO_VALUE
            if isinstance(result, str):
                return [result]
            return [str(name) for name in result]

        if not self.is_connected:
            raise SessionClosed(f"REPL {self.name!r} is not connected")
        return self.cache.get_or_fetch(self.connection_id, slot, fetch)

    def close(self) -> None:
        """Tear the connection down and release everything tied to it.

        Outstanding requests are abandoned without running their callbacks,
        unless ``config.fail_on_teardown`` is set, in which case each is
        failed through the normal failure path. Safe to call repeatedly,
        including from a callback that runs during teardown.
        """
        failing: list[TrackedRequest] = []
        abandoned: list[TrackedRequest] = []
        with self._teardown_lock:
            was_connected = self.is_connected
            self.transport.close()
            self.reassembler.drop(self.connection_id)
            self.cache.evict(self.connection_id)
            # Requests the reader already claimed are finished by the reader.
            if self.config.fail_on_teardown:
                failing = self.registry.claim_all()
            else:
                abandoned = self.registry.abandon_all()

        # Callbacks run outside the lock so they may close or reopen the session.
        for request in failing:
            self.dispatcher.complete(request, Failure(TEARDOWN_MESSAGE, []))
        for request in abandoned:
            self.dispatcher.release(request)

        if abandoned:
            logger.warning("Abandoned %d outstanding request(s) on %s", len(abandoned), self.name)
        if was_connected:
            logger.info("Closed REPL %s", self.name)

    def _on_remote_close(self) -> None:
        self.close()


class SessionManager:
    """Keeps at most one live ``ReplClient`` per REPL context name.

    All clients share one reassembler and one name-list cache, both keyed by
    connection, so tearing a client down only touches its own entries.
    """

    def __init__(self, config: ClientConfig | None = None, **client_options: Any):
        self.config = config or ClientConfig()
        self.reassembler = StreamReassembler(self.config.max_buffer_bytes)
        self.cache = NameListCache()
        self._client_options = client_options
        self._clients: dict[str, ReplClient] = {}
        self._lock = threading.Lock()

    def open(self, name: str, host: str | None = None, port: int | None = None) -> ReplClient:
        """Return the live client for ``name``, connecting a new one if needed.

        Raises:
            ConnectionFailed: If a new connection could not be made. Nothing
                is registered under ``name`` in that case.
        """
        with self._lock:
            existing = self._clients.get(name)
            if existing is not None:
                if existing.is_connected:
                    logger.debug("Reusing live session for %s", name)
                    return existing
                existing.close()
                del self._clients[name]

            updates = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
            config = self.config.model_copy(update=updates)
            client = ReplClient(
                name,
                config,
                reassembler=self.reassembler,
                cache=self.cache,
                **self._client_options,
            )
            client.connect()
            self._clients[name] = client
            return client

    def get(self, name: str) -> ReplClient | None:
        with self._lock:
            return self._clients.get(name)

    def close(self, name: str) -> bool:
        """Tear down the client for ``name``. Returns whether one existed."""
        with self._lock:
            client = self._clients.pop(name, None)
        if client is None:
            return False
        client.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

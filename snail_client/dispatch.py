"""Routing of decoded responses to the requests waiting for them."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from snail_client.deferred import Failure, Outcome, RequestRegistry, Success, TrackedRequest
from snail_client.errors import ProtocolViolation, UnknownRequestId
from snail_client.protocol import DoneResponse, ErrorResponse, LogMessage, Response
from snail_client.tempfiles import TempFileStore

logger = logging.getLogger(__name__)
remote_logger = logging.getLogger("snail_client.remote")

REMOTE_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class BusyIndicator(Protocol):
    def start(self, context: Any) -> None: ...

    def stop(self, context: Any) -> None: ...


class ErrorViewer(Protocol):
    def show(self, message: str, stack: list[str], context: Any) -> None: ...


LogHandler = Callable[[str, str], None]


class Dispatcher:
    """Resolves responses against a registry and runs their callbacks.

    For every resolved request the order is fixed: callback, then cleanup
    (temp file, busy indicator), then retirement. Callbacks therefore still
    find their request in the registry.
    """

    def __init__(
        self,
        registry: RequestRegistry,
        *,
        busy: BusyIndicator | None = None,
        error_viewer: ErrorViewer | None = None,
        tempfiles: TempFileStore | None = None,
        log_handler: LogHandler | None = None,
    ):
        self.registry = registry
        self.busy = busy
        self.error_viewer = error_viewer
        self.tempfiles = tempfiles or TempFileStore()
        self.log_handler = log_handler

    def dispatch(self, response: Response) -> None:
        """Handle one decoded response."""
        if isinstance(response, DoneResponse):
            self.resolve(response.reqid, Success(response.payload))
        elif isinstance(response, ErrorResponse):
            self.resolve(response.reqid, Failure(response.message, list(response.stack)))
        elif isinstance(response, LogMessage):
            self._log_remote(response)
        else:
            logger.warning("Ignoring unsupported response %r", response)

    def resolve(self, reqid: str, outcome: Outcome) -> bool:
        """Finish the request ``reqid`` with ``outcome``.

        Returns ``False`` if no such request is outstanding.
        """
        request = self.registry.claim(reqid)
        if request is None:
            logger.warning("Discarding response: %s", UnknownRequestId(reqid))
            return False
        self.complete(request, outcome)
        return True

    def complete(self, request: TrackedRequest, outcome: Outcome) -> None:
        """Finish a request the caller has already claimed."""
        self._run_callbacks(request, outcome)
        self.release(request)
        self.registry.retire(request.reqid)
        request.settle(outcome)

    def release(self, request: TrackedRequest) -> None:
        """Undo the side effects attached to a request."""
        if request.tmpfile is not None:
            self.tempfiles.delete(request.tmpfile)
        if self.busy is not None:
            try:
                self.busy.stop(request.origin)
            except Exception:
                logger.exception("Busy indicator failed to stop for %s", request.reqid)

    def _run_callbacks(self, request: TrackedRequest, outcome: Outcome) -> None:
        if isinstance(outcome, Failure) and request.display_error and self.error_viewer is not None:
            try:
                self.error_viewer.show(outcome.message, list(outcome.stack), request.display)
            except Exception:
                logger.exception("Error viewer failed for request %s", request.reqid)
        try:
            if isinstance(outcome, Success):
                request.on_success(outcome.payload)
            else:
                request.on_failure(outcome)
        except Exception:
            logger.exception("Callback for request %s raised", request.reqid)

    def _log_remote(self, record: LogMessage) -> None:
        try:
            text = record.text()
        except ProtocolViolation as e:
            logger.warning("Dropping remote log record: %s", e)
            return
        level = REMOTE_LOG_LEVELS.get(record.level.lower(), logging.INFO)
        remote_logger.log(level, "%s", text)
        if self.log_handler is not None:
            try:
                self.log_handler(record.level, text)
            except Exception:
                logger.exception("Remote log handler raised")

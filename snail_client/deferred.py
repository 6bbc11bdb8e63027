"""Tracking of requests that are waiting for an interpreter response.

Every evaluation request is registered before its bytes are sent. The entry
holds the callbacks and cleanup obligations of the request until the
dispatcher retires it, or until the session is torn down and the entry is
abandoned.

Example:
    registry = RequestRegistry()
    reqid = registry.register(TrackedRequest(on_success=print))
    # ... later, from the dispatcher:
    request = registry.retire(reqid)
    request.settle(Success("42"))
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Union

from snail_client.helpers import NO_VALUE, new_request_id

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    """State of a tracked request."""

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Success:
    """The interpreter evaluated the request."""

    payload: Any = NO_VALUE


@dataclass(frozen=True)
class Failure:
    """The interpreter raised while evaluating the request."""

    message: str
    stack: list[str] = field(default_factory=list)


Outcome = Union[Success, Failure]


def acknowledge(payload: Any) -> None:
    """Default success callback: log that the command finished."""
    logger.info("Command succeeded")


def report_failure(failure: Failure) -> None:
    """Default failure callback: log the interpreter's error message."""
    logger.warning("Command failed: %s", failure.message)


@dataclass(eq=False)
class TrackedRequest:
    """An outstanding request and everything needed to finish it.

    ``origin`` is the context that issued the request (the busy indicator is
    tied to it); ``display`` is where errors should be shown.
    """

    origin: Any = None
    display: Any = None
    on_success: Callable[[Any], None] = acknowledge
    on_failure: Callable[[Failure], None] = report_failure
    display_error: bool = True
    tmpfile: Path | None = None
    reqid: str = ""
    state: RequestState = RequestState.PENDING
    outcome: Outcome | None = None
    claimed: bool = field(default=False, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    def is_pending(self) -> bool:
        return self.state == RequestState.PENDING

    def is_resolved(self) -> bool:
        return self.state == RequestState.RESOLVED

    def is_failed(self) -> bool:
        return self.state == RequestState.FAILED

    def is_abandoned(self) -> bool:
        return self.state == RequestState.ABANDONED

    def settle(self, outcome: Outcome) -> None:
        """Record the outcome and wake anyone waiting on this request."""
        if self.state != RequestState.PENDING:
            raise RuntimeError(f"Cannot settle request in state {self.state}")
        self.outcome = outcome
        if isinstance(outcome, Failure):
            self.state = RequestState.FAILED
        else:
            self.state = RequestState.RESOLVED
        self._done.set()

    def abandon(self) -> None:
        """Give up on the request without an outcome."""
        if self.state != RequestState.PENDING:
            return
        self.state = RequestState.ABANDONED
        self._done.set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None, poll_interval: float | None = None) -> bool:
        """Block until the request leaves the pending state.

        Waits in slices of at most ``poll_interval`` seconds. Returns whether
        the request finished before ``timeout`` elapsed.
        """
        if timeout is None:
            return self._done.wait()
        deadline = time.monotonic() + timeout
        while not self._done.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            step = remaining if poll_interval is None else min(poll_interval, remaining)
            self._done.wait(step)
        return self._done.is_set()


class RequestRegistry:
    """Registry of outstanding requests, keyed by request id.

    The registry is the single source of truth for what is outstanding. It is
    read by the reader thread and written by callers, so every access goes
    through one lock.
    """

    def __init__(self, id_factory: Callable[[], str] = new_request_id):
        self._requests: dict[str, TrackedRequest] = {}
        self._id_factory = id_factory
        self._lock = threading.RLock()

    def register(self, request: TrackedRequest) -> str:
        """Assign a fresh id to ``request`` and start tracking it."""
        with self._lock:
            reqid = self._id_factory()
            while reqid in self._requests:
                reqid = self._id_factory()
            request.reqid = reqid
            self._requests[reqid] = request
        return reqid

    def get(self, reqid: str) -> TrackedRequest | None:
        """Get an outstanding request by id."""
        with self._lock:
            return self._requests.get(reqid)

    def claim(self, reqid: str) -> TrackedRequest | None:
        """Take the exclusive right to resolve a request.

        The request stays registered until it is retired. Returns ``None``
        if the id is unknown or another caller already claimed it.
        """
        with self._lock:
            request = self._requests.get(reqid)
            if request is None or request.claimed:
                return None
            request.claimed = True
            return request

    def claim_all(self) -> list[TrackedRequest]:
        """Claim every outstanding request nobody has claimed yet.

        Claimed requests stay registered until their resolver retires them.
        """
        with self._lock:
            claimed = [request for request in self._requests.values() if not request.claimed]
            for request in claimed:
                request.claimed = True
            return claimed

    def retire(self, reqid: str) -> TrackedRequest | None:
        """Stop tracking a request and return it."""
        with self._lock:
            return self._requests.pop(reqid, None)

    def pending_ids(self) -> list[str]:
        """Get ids of all outstanding requests."""
        with self._lock:
            return list(self._requests)

    def pending_requests(self) -> list[TrackedRequest]:
        with self._lock:
            return list(self._requests.values())

    def abandon_all(self) -> list[TrackedRequest]:
        """Drop every outstanding request without running its callbacks."""
        with self._lock:
            abandoned = list(self._requests.values())
            self._requests.clear()
        # Claimed requests are mid-resolution; their resolver settles them.
        abandoned = [request for request in abandoned if not request.claimed]
        for request in abandoned:
            request.abandon()
        return abandoned

    def __contains__(self, reqid: object) -> bool:
        with self._lock:
            return reqid in self._requests

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

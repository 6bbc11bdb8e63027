"""Error types raised and absorbed by the protocol engine."""

from __future__ import annotations


class SnailError(Exception):
    """Base class for all snail_client errors."""


class ConnectionFailed(SnailError):
    """Raised when the interpreter cannot be reached or a write fails."""

    def __init__(self, host: str, port: int, attempts: int, reason: str = ""):
        self.host = host
        self.port = port
        self.attempts = attempts
        message = f"Could not connect to {host}:{port} after {attempts} attempt(s)"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SessionClosed(SnailError):
    """Raised when an operation needs a live connection and there is none."""


class MalformedResponse(SnailError):
    """Raised when buffered bytes do not yet form a complete value.

    This is the normal signal that more bytes are needed; the reassembler
    absorbs it and waits for the next chunk.
    """


class ProtocolViolation(SnailError):
    """Raised when a complete value does not match any known response shape."""

    def __init__(self, message: str, consumed: int = 0):
        self.consumed = consumed
        super().__init__(message)


class UnknownRequestId(SnailError):
    """A response referenced a request id that is not outstanding."""

    def __init__(self, reqid: str):
        self.reqid = reqid
        super().__init__(f"Unknown request id: {reqid}")


class RemoteFailure(SnailError):
    """The interpreter reported an error while evaluating a request."""

    def __init__(self, message: str, stack: list[str] | None = None):
        self.remote_message = message
        self.stack = list(stack or [])
        formatted = message
        if self.stack:
            formatted = message + "\n" + "\n".join(f"  {frame}" for frame in self.stack)
        super().__init__(formatted)

"""snail_client - editor-side client for a long-running interpreter.

This package implements the request/response engine that sends code
fragments to an interpreter over a line-oriented socket protocol and routes
results, errors and log records back to callbacks.
"""

from snail_client.cache import NameListCache
from snail_client.client import ReplClient, SessionManager
from snail_client.config import ClientConfig
from snail_client.deferred import Failure, RequestRegistry, Success, TrackedRequest
from snail_client.dispatch import Dispatcher
from snail_client.errors import (
    ConnectionFailed,
    MalformedResponse,
    ProtocolViolation,
    RemoteFailure,
    SessionClosed,
    SnailError,
    UnknownRequestId,
)
from snail_client.helpers import MISS, NO_VALUE, CacheSlot
from snail_client.protocol import (
    DoneResponse,
    ErrorResponse,
    EvalRequest,
    LogMessage,
    decode_request,
    decode_response,
    encode_request,
)
from snail_client.reassembler import StreamReassembler
from snail_client.sync import call_sync
from snail_client.transport import TransportSession

__version__ = "0.1.0"
__all__ = [
    "MISS",
    "NO_VALUE",
    "CacheSlot",
    "ClientConfig",
    "ConnectionFailed",
    "Dispatcher",
    "DoneResponse",
    "ErrorResponse",
    "EvalRequest",
    "Failure",
    "LogMessage",
    "MalformedResponse",
    "NameListCache",
    "ProtocolViolation",
    "RemoteFailure",
    "ReplClient",
    "RequestRegistry",
    "SessionClosed",
    "SessionManager",
    "SnailError",
    "StreamReassembler",
    "Success",
    "TrackedRequest",
    "TransportSession",
    "UnknownRequestId",
    "call_sync",
    "decode_request",
    "decode_response",
    "encode_request",
]

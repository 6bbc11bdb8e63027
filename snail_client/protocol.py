"""Wire protocol types and codec for interpreter communication.

Requests are single JSON lines carrying the namespace path, the request id and
the source text. Responses are JSON objects read off a byte stream that may
arrive in arbitrary fragments; ``decode_response`` reads exactly one value and
reports how many bytes it consumed.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from snail_client.errors import MalformedResponse, ProtocolViolation
from snail_client.helpers import NO_VALUE, ROOT_NAMESPACE, NamespaceLike, namespace_path

_WHITESPACE = b" \t\r\n"
_decoder = json.JSONDecoder()


class EvalRequest(BaseModel):
    """Request to evaluate code inside a namespace of the interpreter."""

    ns: list[str] = Field(
        default_factory=lambda: [ROOT_NAMESPACE],
        description="Namespace path, outermost segment first",
    )
    reqid: str = Field(..., description="Request id echoed back in the response")
    code: str = Field(..., description="Source text to evaluate")

    @field_validator("ns")
    @classmethod
    def _check_ns(cls, value: list[str]) -> list[str]:
        return namespace_path(value)


class DoneResponse(BaseModel):
    """Successful evaluation."""

    type: Literal["done"] = "done"
    reqid: str
    result: Any | None = None

    @property
    def payload(self) -> Any:
        """The result, or ``NO_VALUE`` when the interpreter returned nothing."""
        return NO_VALUE if self.result is None else self.result


class ErrorResponse(BaseModel):
    """Evaluation raised inside the interpreter."""

    type: Literal["error"] = "error"
    reqid: str
    message: str
    stack: list[str] = Field(default_factory=list, description="Stack frame descriptions")


class LogMessage(BaseModel):
    """Log record emitted by the interpreter's logger, not tied to a request."""

    type: Literal["log"] = "log"
    level: str
    message: str = Field(..., description="Base64-encoded message text")

    def text(self) -> str:
        """Decode the message body."""
        try:
            raw = base64.b64decode(self.message, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolViolation(f"Log message is not valid base64: {e}") from e
        return raw.decode("utf-8", errors="replace")


Response = Annotated[
    Union[DoneResponse, ErrorResponse, LogMessage],
    Field(discriminator="type"),
]

_response_adapter: TypeAdapter[Response] = TypeAdapter(Response)


def encode_request(namespace: NamespaceLike, reqid: str, code: str) -> bytes:
    """Encode an evaluation request as one newline-terminated line."""
    request = EvalRequest(ns=namespace_path(namespace), reqid=reqid, code=code)
    return (request.model_dump_json() + "\n").encode("utf-8")


def decode_request(line: bytes | str) -> EvalRequest:
    """Decode one request line (the interpreter side of ``encode_request``)."""
    try:
        return EvalRequest.model_validate_json(line)
    except ValidationError as e:
        raise ProtocolViolation(f"Invalid request: {e}") from e


def _text_prefix(data: bytes, start: int) -> tuple[str, int | None]:
    """Decode ``data[start:]`` as far as it is valid UTF-8.

    A multibyte sequence cut off at the end is left out. Returns the text and
    the offset of the first invalid byte, or ``None`` if there is none.
    """
    chunk = data[start:]
    try:
        return chunk.decode("utf-8"), None
    except UnicodeDecodeError as e:
        text = chunk[: e.start].decode("utf-8")
        if e.reason == "unexpected end of data":
            return text, None
        return text, start + e.start


def decode_response(data: bytes) -> tuple[Response, int]:
    """Decode the first complete response in ``data``.

    Returns:
        The response and the number of bytes consumed, including any
        leading whitespace.

    Raises:
        MalformedResponse: ``data`` holds no complete value yet.
        ProtocolViolation: A complete value was read but is not a response,
            or the value holds invalid UTF-8. ``consumed`` says how many
            bytes to drop; an invalid byte spoils only its own line.
    """
    start = len(data) - len(data.lstrip(_WHITESPACE))
    if start == len(data):
        raise MalformedResponse("No data")

    text, bad_at = _text_prefix(data, start)
    try:
        value, end = _decoder.raw_decode(text)
    except json.JSONDecodeError as e:
        if bad_at is None:
            raise MalformedResponse(str(e)) from e
        newline = data.find(b"\n", bad_at)
        if newline < 0:
            raise MalformedResponse("Invalid UTF-8 in an unterminated line") from e
        raise ProtocolViolation("Invalid UTF-8 in response stream", consumed=newline + 1) from e

    consumed = start + len(text[:end].encode("utf-8"))
    if not isinstance(value, dict):
        raise ProtocolViolation(
            f"Expected a response object, got {type(value).__name__}", consumed=consumed
        )
    try:
        response = _response_adapter.validate_python(value)
    except ValidationError as e:
        raise ProtocolViolation(f"Unrecognized response: {e}", consumed=consumed) from e
    return response, consumed

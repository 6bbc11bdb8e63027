"""Blocking calls on top of the asynchronous request path.

``call_sync`` registers and sends a request exactly like ``ReplClient.send``
and then waits for that request to leave the pending state. Giving up on a
slow request does not cancel it: the registry entry stays live, and a late
response still runs the request's callbacks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from snail_client.deferred import Failure, Success
from snail_client.errors import RemoteFailure
from snail_client.helpers import NO_VALUE, NamespaceLike

if TYPE_CHECKING:
    from snail_client.client import ReplClient

logger = logging.getLogger(__name__)


def call_sync(
    client: ReplClient,
    code: str,
    ns: NamespaceLike = None,
    *,
    poll_interval: float | None = None,
    timeout: float | None = None,
    raise_on_failure: bool = False,
    **send_options: Any,
) -> Any:
    """Evaluate ``code`` and wait for the result.

    Args:
        client: Connected client to send through.
        code: Source text to evaluate.
        ns: Namespace path (see ``helpers.namespace_path``).
        poll_interval: Longest single wait slice; defaults to the client config.
        timeout: Seconds to wait; defaults to the client config.
        raise_on_failure: Raise ``RemoteFailure`` instead of returning
            ``NO_VALUE`` when the interpreter reports an error.
        **send_options: Passed to ``ReplClient.submit`` (callbacks, contexts).

    Returns:
        The response payload, or ``NO_VALUE`` on timeout, failure, teardown,
        or when the interpreter returned nothing.
    """
    if poll_interval is None:
        poll_interval = client.config.poll_interval
    if timeout is None:
        timeout = client.config.sync_timeout

    request = client.submit(code, ns, **send_options)
    if not request.wait(timeout, poll_interval):
        logger.info(
            "Request %s still pending after %.2fs; leaving it registered", request.reqid, timeout
        )
        return NO_VALUE

    outcome = request.outcome
    if isinstance(outcome, Success):
        return outcome.payload
    if isinstance(outcome, Failure):
        if raise_on_failure:
            raise RemoteFailure(outcome.message, outcome.stack)
        return NO_VALUE
    logger.debug("Request %s was abandoned", request.reqid)
    return NO_VALUE

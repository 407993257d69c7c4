"""Context variables carrying correlation ids across a checkout.

``REQUEST_ID_CTX`` holds the id of the request that started the checkout and
``ORDER_ID_CTX`` the order currently being paid or finalized. Both are read by
``RequestIdFilter`` for log correlation and by the HTTP payment gateway for
header propagation. Context variables follow the running task, so concurrent
checkouts never see each other's ids.
"""

import contextvars
import uuid
from contextlib import contextmanager
from typing import Optional

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
ORDER_ID_CTX = contextvars.ContextVar("order_id", default="-")


@contextmanager
def bind_request(request_id: Optional[str] = None):
    """Set the request id for the duration of the block.

    A new UUIDv4 is generated when the caller has none.

    Yields:
        str: The request id in effect.
    """
    rid = request_id or str(uuid.uuid4())
    token = REQUEST_ID_CTX.set(rid)
    try:
        yield rid
    finally:
        REQUEST_ID_CTX.reset(token)


@contextmanager
def bind_order(order_id: str):
    token = ORDER_ID_CTX.set(str(order_id))
    try:
        yield order_id
    finally:
        ORDER_ID_CTX.reset(token)

"""X-Request-ID for sprint API calls.

A client that polls a sprint can send its own id and find the matching
``correlation_id`` in the orchestration logs; otherwise a UUID4 is generated.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"


def setup_correlation_middleware(app: FastAPI) -> None:
    # validator=None: client ids are echoed whatever their format
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,
    )


def get_correlation_id() -> str | None:
    """Current request's id, or None outside a request."""
    return correlation_id.get(None)

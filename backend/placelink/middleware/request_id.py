"""Correlation IDs for API calls.

Each HTTP request gets one ID, taken from the caller's X-Request-ID when it
is a sane token and minted otherwise. It is kept in a ContextVar for the
logging filter, so the redirect, browser and Nominatim log lines of one
resolve share it, and is sent back on the response.
"""

import contextvars
import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Caller IDs end up in every log line; keep them short and printable
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


def pick_request_id(incoming: str | None) -> str:
    """Keep a well-formed caller ID, otherwise mint a UUID4."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = pick_request_id(request.headers.get(REQUEST_ID_HEADER))

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id() -> str:
    """Get the current request ID (empty string outside a request)."""
    return request_id_var.get()

"""
Request correlation.

A caller-supplied X-Request-ID is reused when it looks like an id
(letters, digits, dot, dash, underscore, colon; at most 128 chars), so
upstream proxies can stitch traces together. Anything else is replaced
by a fresh UUID before it can reach a log line.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _REQUEST_ID_RE.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        ctx_token = request_id_var.set(request_id)
        try:
            start = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - start) * 1000, 1)

            response.headers[REQUEST_ID_HEADER] = request_id
            # bcrypt at production cost makes login the usual suspect
            log = logger.warning if elapsed_ms > SLOW_REQUEST_MS else logger.debug
            log(
                "%s %s -> %s",
                request.method,
                request.url.path,
                response.status_code,
                extra={"duration_ms": elapsed_ms},
            )
            return response
        finally:
            request_id_var.reset(ctx_token)

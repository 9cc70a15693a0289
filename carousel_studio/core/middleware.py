"""Per-request logging context for the studio API."""

import time
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from carousel_studio.core.logging import carousel_id_var, get_logger, job_id_var, request_id_var, user_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"
USER_ID_HEADER = "x-user-id"


def _caller(request: Request) -> str | None:
    # Identity is enforced in deps; here a malformed header is just not logged.
    raw = request.headers.get(USER_ID_HEADER)
    if not raw:
        return None
    try:
        return str(UUID(raw))
    except ValueError:
        return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request and caller ids, echoes the request id, logs timing."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request_id_var.set(request_id)
        user_id_var.set(_caller(request))
        carousel_id_var.set(None)
        job_id_var.set(None)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response

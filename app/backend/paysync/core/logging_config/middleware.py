import logging
from time import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from paysync.core.logging_config import new_request_id, request_id_ctx

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Tag the request with an id and log method, path, status code and duration."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        token = request_id_ctx.set(request_id)
        try:
            if request.url.path == "/health_check":
                response = await call_next(request)
            else:
                start_time = time()
                response = await call_next(request)
                duration_ms = int((time() - start_time) * 1000)
                logger.info(
                    f"HTTP {request.method} {request.url.path} {response.status_code} {duration_ms}ms"
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_ctx.reset(token)

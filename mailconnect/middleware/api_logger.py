import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("api")

MAX_LINE = 80


class APILoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)

        path = request.url.path
        if path.startswith("/api"):
            duration_ms = (time.perf_counter() - start_time) * 1000
            log_line = f"{request.method} {path} {response.status_code} in {duration_ms:.0f}ms"
            if len(log_line) > MAX_LINE:
                log_line = log_line[:MAX_LINE - 1] + "…"
            logger.info(log_line)

        return response

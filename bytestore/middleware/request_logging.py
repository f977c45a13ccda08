import logging
import time

from fastapi import Request

logger = logging.getLogger("bytestore.access")


def add_request_logging(app):
    @app.middleware("http")
    async def request_logging_mw(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response

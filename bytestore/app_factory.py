# bytestore/app_factory.py
"""
Shared FastAPI wiring for the orders and reviews services: lifespan checks,
middleware, error handlers, housekeeping routes and the JSON 404 catch-all.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import Table
from sqlalchemy.engine import Engine

from bytestore.config import settings
from bytestore.core.errors import register_exception_handlers
from bytestore.core.timestamps import to_iso
from bytestore.database import Base, check_connection
from bytestore.middleware.cors_config import configure_cors
from bytestore.middleware.request_logging import add_request_logging
from bytestore.middleware.security_headers import add_security_headers

VERSION = "1.0.0"

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("uvicorn.error")


def create_app(
    service: str,
    title: str,
    description: str,
    engine: Engine,
    tables: List[Table],
    routers: Iterable[APIRouter],
    endpoints: Dict[str, str],
) -> FastAPI:
    started = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Create missing tables and make sure the database answers before
        the app starts serving.
        """
        Base.metadata.create_all(bind=engine, tables=tables)
        check_connection(engine)
        logger.info("%s started (env=%s)", title, settings.ENV)
        yield
        engine.dispose()
        logger.info("Shutting down %s", title)

    app = FastAPI(title=title, version=VERSION, description=description, lifespan=lifespan)
    configure_cors(app)
    add_security_headers(app)
    add_request_logging(app)
    register_exception_handlers(app)

    for router in routers:
        app.include_router(router)

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        return {
            "message": title,
            "version": VERSION,
            "description": description,
            "endpoints": dict(endpoints, health="/health"),
        }

    @app.get("/health", tags=["root"])
    async def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "service": service,
            "timestamp": to_iso(datetime.utcnow()),
            "uptime": round(time.monotonic() - started, 3),
        }

    # must stay the last route registered
    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    async def not_found(request: Request) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"message": "Endpoint not found", "path": request.url.path, "method": request.method},
        )

    return app

"""
GuildWatch HTTP application
===========================

``create_app`` wires routers, exception handlers and the per-request log
context middleware.

Resources:
- When a DatabaseService and TibiaDataClient are passed in, the caller owns
  them (the process entrypoint, tests) and the services are built at once.
- Otherwise the lifespan opens both from Config on startup and closes them
  on shutdown.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from guildwatch.core.config import Config
from guildwatch.core.database.service import DatabaseService
from guildwatch.core.logging import LogContext, get_logger
from guildwatch.modules.tibiadata import TibiaDataClient

from .errors import register_exception_handlers
from .routes import ROUTERS
from .state import build_services

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _lifespan_factory(owns_resources: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not owns_resources:
            yield
            return

        db = DatabaseService.from_config()
        await db.open()
        if Config.DATABASE_AUTO_CREATE:
            await db.create_all()
        client = TibiaDataClient.from_config()
        app.state.services = build_services(db, client)
        logger.info("✓ API services ready")

        try:
            yield
        finally:
            try:
                await client.aclose()
                logger.info("✓ TibiaData client closed")
            except Exception as exc:
                logger.error(f"TibiaData client close error: {exc}", exc_info=True)
            await db.close()
            logger.info("✓ Database service closed")

    return lifespan


def create_app(
    db: Optional[DatabaseService] = None,
    client: Optional[TibiaDataClient] = None,
) -> FastAPI:
    if (db is None) != (client is None):
        raise ValueError("Pass both a DatabaseService and a TibiaDataClient, or neither")

    owns_resources = db is None
    app = FastAPI(
        title=Config.APP_NAME,
        version=Config.APP_VERSION,
        lifespan=_lifespan_factory(owns_resources),
    )
    if not owns_resources:
        app.state.services = build_services(db, client)

    register_exception_handlers(app)

    @app.middleware("http")
    async def bind_log_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        async with LogContext(
            route=f"{request.method} {request.url.path}",
            request_id=request_id,
            component="api",
        ):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        services = getattr(request.app.state, "services", None)
        database_ok = services is not None and await services.db.health_check()
        body: Dict[str, Any] = {
            "status": "healthy" if database_ok else "unhealthy",
            "database": "connected" if database_ok else "disconnected",
            "version": Config.APP_VERSION,
        }
        return JSONResponse(status_code=200 if database_ok else 503, content=body)

    return app

"""SimpleIT access-control and ticket service: application entry point."""

from __future__ import annotations

import asyncio
import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy import text

from simpleit.api.auth import router as auth_router
from simpleit.api.middleware.audit import AuditMiddleware
from simpleit.api.rbac import router as rbac_router
from simpleit.api.tickets import router as tickets_router
from simpleit.config import get_settings
from simpleit.errors import install_error_handlers
from simpleit.logging.structured_logger import setup_logging
from simpleit.monitoring.metrics import get_metrics
from simpleit.rbac.roles import set_unrecognized_role_log_level
from simpleit.storage.engine import dispose_engine, get_engine

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SimpleIT",
    description="Role-based access control and help-desk ticket lifecycle",
    version="0.1.0",
)
app.include_router(auth_router)
app.include_router(rbac_router)
app.include_router(tickets_router)
install_error_handlers(app)
# Middleware order (last added = outermost = runs first): CORS → Audit
app.add_middleware(AuditMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.get("/health")
async def health_check() -> dict[str, object]:
    """Health check endpoint."""
    db_ok = False
    try:
        engine = await get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.debug("Database health check failed", exc_info=True)

    return {
        "status": "ok" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type="text/plain; charset=utf-8")


async def main() -> None:
    """Main application entry point."""
    settings = get_settings()

    # Validate configuration before anything else
    validation = settings.validate_required()
    if not validation.ok:
        for err in validation.errors:
            hint = f" Hint: {err.hint}" if err.hint else ""
            print(f"❌ {err.field}: {err.message}.{hint}")
        print(f"\n{len(validation.errors)} configuration error(s). Fix them and restart.")
        sys.exit(1)

    setup_logging(level=settings.logging.level, format_type=settings.logging.format)
    set_unrecognized_role_log_level(settings.rbac.unrecognized_role_log_level)

    logger.info("Starting SimpleIT v0.1.0 on %s:%d", settings.api_host, settings.api_port)

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.logging.level.lower(),
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await dispose_engine()
        logger.info("SimpleIT stopped")


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

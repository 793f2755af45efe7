import logging
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from paysync.api import admin, metrics, stripe_webhook
from paysync.core.config import get_settings
from paysync.core.errors import (
    http_exception_handler,
    paysync_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from paysync.core.exceptions import PaySyncError
from paysync.core.lifespan import lifespan
from paysync.core.logging_config.middleware import LoggingMiddleware
from paysync.core.rate_limit import limiter
from paysync.db.session import get_session_factory
from paysync.version import __version__

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Paysync API",
    description="Cin7 Core and Stripe payment synchronization service",
    version=__version__,
    debug=get_settings().LOG_LEVEL == "DEBUG",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(PaySyncError, paysync_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)

app.include_router(stripe_webhook.router)
app.include_router(admin.router)
app.include_router(metrics.router)


@app.get("/health_check")
async def health_check(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    check_db: bool = False,
) -> dict[str, str | bool]:
    """Health check endpoint to verify API is running.

    Args:
        check_db: If True, also checks database connectivity
    """
    settings = get_settings()
    result: dict[str, str | bool] = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "cin7": "configured" if settings.cin7_configured else "not_configured",
    }

    if check_db:
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
                result["database"] = "connected"
        except SQLAlchemyError as e:
            result["status"] = "unhealthy"
            result["database"] = "disconnected"
            result["error"] = str(e)

    return result

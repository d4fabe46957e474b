"""FastAPI application entry point.

ShopGuard API - trust scoring, escrow and settlement for marketplace shops.
Every error leaves the API as { "error": { "code", "message", "detail" } }.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shopguard.errors import DomainError, ValidationError
from shopguard.routes import api_router
from shopguard.schemas import ErrorResponse
from shopguard.settings import get_settings
from shopguard.stores.postgres import close_db, init_db, ping_db
from shopguard.stores.redis import close_redis, init_redis

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open Postgres and Redis; a failed connection is logged, not fatal."""
    try:
        await init_db()
        await ping_db()
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    # Without Redis the badge is computed per request and jobs run unlocked
    try:
        await init_redis()
    except Exception:
        logger.exception("Redis init failed")

    yield

    await close_redis()
    await close_db()


def _error_response(exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(ErrorResponse.from_error(exc)),
    )


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Trust & settlement engine for multi-tenant marketplaces",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationError("Request validation failed", detail={"errors": jsonable_encoder(exc.errors())})
        return _error_response(error)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": str(exc) if settings.debug else "Internal server error",
                    "detail": None,
                }
            },
        )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(api_router)
    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "shopguard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import modcache.models  # noqa: F401 (registers all models with SQLModel)
from modcache import __version__
from modcache.config import settings
from modcache.database import create_db_and_tables
from modcache.exceptions import (
    AuthFailedError,
    ConflictError,
    FetchError,
    NotFoundError,
    RateLimitedError,
    RemoteNotFoundError,
    StoreIOError,
)
from modcache.routers import api_router


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    create_db_and_tables()
    logger.info("modcache %s started", __version__)
    yield
    from modcache.database import engine

    engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="modcache",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, exc)


@app.exception_handler(RemoteNotFoundError)
async def remote_not_found_handler(request: Request, exc: RemoteNotFoundError) -> JSONResponse:
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return _error(404, exc)


@app.exception_handler(AuthFailedError)
async def auth_failed_handler(request: Request, exc: AuthFailedError) -> JSONResponse:
    logger.error("Nexus rejected the API key: %s", exc)
    return _error(401, exc)


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    logger.warning("Rate limited on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=429,
        content={
            "detail": str(exc),
            "hourly_remaining": exc.hourly_remaining,
            "daily_remaining": exc.daily_remaining,
            "reset": exc.reset,
        },
    )


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    logger.warning("Nexus request failed on %s %s: %s", request.method, request.url.path, exc)
    return _error(502, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    logger.error("Store conflict on %s %s: %s", request.method, request.url.path, exc)
    return _error(409, exc)


@app.exception_handler(StoreIOError)
async def store_io_handler(request: Request, exc: StoreIOError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, exc)


@app.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__, "default_game": settings.default_game}

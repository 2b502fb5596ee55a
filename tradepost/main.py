import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tradepost.api import collection_router, health_router, trades_router
from tradepost.config import settings
from tradepost.db.database import init_db
from tradepost.models.failure import ApiResponse, KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("tradepost"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render domain failures as the ApiResponse failure envelope."""
    logger.info("Known failure (%s): %s", exc.kind.value, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures outside settlement have no domain explanation."""
    logger.exception("Unhandled store failure: %s", type(exc).__name__)
    return JSONResponse(
        status_code=503,
        content=ApiResponse.unknown_failure(type(exc).__name__).model_dump(mode="json"),
    )


app.include_router(collection_router)
app.include_router(health_router)
app.include_router(trades_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

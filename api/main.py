import logging
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth import router as auth_router
from core import config, db
from core.errors import ApiError, StorageWriteError, driver_diagnostics
from records import router as records_router

logging.basicConfig(
    level=logging.DEBUG if config.debug_mode() else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

# Mobile web builds and the local dev server call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    include_diagnostics = config.debug_mode() or bool(getattr(request.state, "include_diagnostics", False))
    if exc.status >= 500:
        logger.error("api_error code=%s status=%s path=%s", exc.code, exc.status, request.url.path)
    else:
        logger.info("api_error code=%s status=%s path=%s", exc.code, exc.status, request.url.path)
    return JSONResponse(
        status_code=exc.status,
        content=exc.to_payload(include_diagnostics=include_diagnostics),
    )


@app.exception_handler(asyncpg.PostgresError)
async def database_error_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    logger.error("database_error path=%s", request.url.path, exc_info=exc)
    error = StorageWriteError(
        "Database error",
        code="database_error",
        diagnostics=driver_diagnostics(exc),
    )
    return await api_error_handler(request, error)


app.include_router(auth_router.router, tags=["auth"])
app.include_router(records_router.router, tags=["records"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}

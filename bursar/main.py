import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bursar.api.v1.api import api_router
from bursar.core.config import settings
from bursar.core.exceptions import BursarError
from bursar.core.logging import configure_logging
from bursar.db.mongo import close_mongo_connection, connect_to_mongo

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    try:
        yield
    finally:
        await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan
)


@app.exception_handler(BursarError)
async def bursar_error_handler(request: Request, exc: BursarError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "code": exc.code}
    )


@app.get("/")
async def root():
    return {"message": "Welcome to Bursar API"}


app.include_router(api_router, prefix=settings.API_V1_STR)

"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nutrilog.config import get_settings
from nutrilog.database import engine, create_tables
from nutrilog.errors import NutrilogError, NotFoundError
from nutrilog.api import admin, dashboard, foods, health, records, sync, users, weekly_stats
from nutrilog.utils.logger import get_logger
from nutrilog.utils.time_manager import get_time_manager

settings = get_settings()
get_logger("nutrilog")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    tables = await create_tables()
    logger.info(f"Database tables ready: {', '.join(tables)}")
    logger.info(f"Reference timezone: {get_time_manager().tz_name}")

    yield

    await engine.dispose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NutrilogError)
async def nutrilog_error_handler(request: Request, exc: NutrilogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    elif not isinstance(exc, NotFoundError):
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(sync.router, tags=["Catalog Sync"])
app.include_router(foods.router, prefix="/api/foods", tags=["Foods"])
app.include_router(records.router, prefix="/api/records", tags=["Records"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(weekly_stats.router, prefix="/api/weekly-stats", tags=["Weekly Stats"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "nutrilog.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )

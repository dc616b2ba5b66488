"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging

import redis
import sentry_sdk
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from quizvault.core.cache import RedisCache, get_cache
from quizvault.core.config import settings
from quizvault.core.database import SessionLocal, get_db, init_db
from quizvault.core.logging import configure_logging
from quizvault.api.admin import router as admin_router
from quizvault.api.auth import router as auth_router
from quizvault.api.categories import router as categories_router
from quizvault.api.collections import router as collections_router
from quizvault.api.comments import router as comments_router
from quizvault.api.imports import router as imports_router
from quizvault.api.items import router as items_router
from quizvault.api.keywords import router as keywords_router
from quizvault.api.ratings import router as ratings_router
from quizvault.api.requests import router as requests_router
from quizvault.api.reviews import router as reviews_router
from quizvault.api.seo import router as seo_router
from quizvault.api.user_settings import router as user_settings_router
from quizvault.api.users import router as users_router
from quizvault.services.seed import seed_database

configure_logging()
logger = logging.getLogger(__name__)

if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT,
                    traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    init_db()
    logger.info("Database initialized")
    if settings.SEED_ON_STARTUP:
        db = SessionLocal()
        try:
            seed_database(db)
        finally:
            db.close()
    yield
    logger.info("Shutdown complete")

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url=None if settings.is_production() else "/docs",
    redoc_url=None if settings.is_production() else "/redoc",
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(items_router, prefix="/items", tags=["items"])
app.include_router(categories_router, prefix="/categories", tags=["categories"])
app.include_router(keywords_router, prefix="/keywords", tags=["keywords"])
app.include_router(comments_router, prefix="/comments", tags=["comments"])
app.include_router(reviews_router, prefix="/reviews", tags=["reviews"])
app.include_router(ratings_router, prefix="/ratings", tags=["ratings"])
app.include_router(collections_router, prefix="/collections", tags=["collections"])
app.include_router(user_settings_router, prefix="/users/settings", tags=["user-settings"])
app.include_router(users_router, prefix="/users", tags=["users"])
app.include_router(requests_router, prefix="/requests", tags=["requests"])
app.include_router(imports_router, prefix="/import", tags=["import"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
app.include_router(seo_router, tags=["seo"])

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP and domain errors as ``{"error": {...}}``."""
    content = {"error": {"code": getattr(exc, "code", None), "message": exc.detail, "type": "http_error", "status_code": exc.status_code}}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    content = {"error": {"code": "Request.Invalid", "message": "Validation error", "type": "validation_error",
                         "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY, "details": jsonable_encoder(exc.errors())}}
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    message = "An internal error occurred" if settings.is_production() else str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"error": {"code": "Server.Error", "message": message, "type": "internal_error", "status_code": 500}})

@app.get("/health", tags=["health"])
def health(): return {"status": "ok", "version": settings.APP_VERSION}

@app.get("/health/ready", tags=["health"])
def readiness(db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)):
    checks = {"database": False, "redis": False}
    try:
        db.execute(text("SELECT 1")); checks["database"] = True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
    try:
        checks["redis"] = bool(cache.redis.ping())
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
    code = status.HTTP_200_OK if all(checks.values()) else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content={"status": "ready" if code == 200 else "degraded", "checks": checks})

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.database import AsyncSessionLocal
from app.errors import DropServiceError
from app.redis_client import close_redis, init_redis, ping_redis
from app.routers import cron, drops, feed, profiles
from app.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.redis = await init_redis()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(title="Deep Cuts drops", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_meta(request: Request, call_next):
    ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    request.state.meta = {"ip": ip, "user_agent": user_agent}

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    line = f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms ip={ip}"
    if response.status_code >= 500:
        logger.error(line)
    elif response.status_code >= 400:
        logger.warning(line)
    else:
        logger.info(line)
    return response


@app.exception_handler(DropServiceError)
async def drop_service_error_handler(request: Request, exc: DropServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "VALIDATION_ERROR",
            "details": jsonable_encoder(exc.errors()),
        },
    )


app.include_router(profiles.router)
app.include_router(drops.router)
app.include_router(feed.router)
app.include_router(cron.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness probe - always returns 200 OK.
    """
    return {"status": "ok"}


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe - checks DB and Redis connectivity.
    Returns 200 if all dependencies are healthy, 503 otherwise.
    """
    errors = []

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        errors.append(f"Database: {str(e)}")

    try:
        await ping_redis(getattr(app.state, "redis", None))
    except Exception as e:
        errors.append(f"Redis: {str(e)}")

    if errors:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "errors": errors},
        )

    return {"status": "ready", "database": "ok", "redis": "ok"}

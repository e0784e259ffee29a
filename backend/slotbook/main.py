# backend/slotbook/main.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .config import settings
from .database import init_db
from .redis_client import redis_client
from .routers import bookings, businesses, services, slots, subscriptions
from .services.errors import DomainError
from .services.maintenance import maintenance_loop

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    task = None
    if settings.maintenance_enabled:
        task = asyncio.create_task(maintenance_loop())

    yield

    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Slotbook API", lifespan=lifespan)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.get("/health")
def health():
    if redis_client is None:
        return {"redis": None}
    try:
        return {"redis": redis_client.ping()}
    except RedisError:
        logger.warning("Redis ping failed")
        return {"redis": False}


app.include_router(slots.router)
app.include_router(services.router)
app.include_router(bookings.router)
app.include_router(businesses.router)
app.include_router(subscriptions.router)

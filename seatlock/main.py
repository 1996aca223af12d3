import logging
import uuid

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware
from sqlalchemy import text

from seatlock.config import settings
from seatlock.db.session import engine
from seatlock.exceptions import SeatLockError
from seatlock.logging_setup import setup_logging, TRACE_ID_CTX
from seatlock.modules.locks.router import router as locks_router
from seatlock.modules.trips.router import router as trips_router
from seatlock.redis_client import redis_client

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# initialize logging and Sentry
setup_logging(settings.LOG_LEVEL)
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)
    app.add_middleware(SentryAsgiMiddleware)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(SeatLockError)
async def seat_lock_error_handler(request: Request, exc: SeatLockError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(locks_router, prefix="/locks", tags=["locks"])
app.include_router(trips_router, prefix="/trips", tags=["trips"])


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness check: database unavailable")
        return Response(status_code=503, content="database unavailable")
    # redis backs the sweeper's broker
    try:
        await redis_client.ping()
    except Exception:
        logger.exception("Readiness check: redis unavailable")
        return Response(status_code=503, content="redis unavailable")
    return {"status": "ready"}

from contextlib import asynccontextmanager
from pathlib import Path

import socketio
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from eventhub import __version__
from eventhub.api.errors import register_exception_handlers
from eventhub.api.v1.router import router as v1_router
from eventhub.core.config import settings, validate_settings
from eventhub.core.logging import configure_logging
from eventhub.db import init_db
from eventhub.middleware.rate_limit import RateLimitMiddleware
from eventhub.middleware.request_id import RequestIdMiddleware
from eventhub.middleware.security_headers import SecurityHeadersMiddleware
from eventhub.realtime import RealtimeRelay
from eventhub.redis_client import reset_redis

configure_logging()
logger = structlog.get_logger()

relay = RealtimeRelay()


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_settings(settings)
    init_db()
    logger.info("app_started", env=settings.env, version=__version__)
    yield
    relay.clear()
    reset_redis()
    logger.info("app_stopped")


app = FastAPI(title="EventHub API", version=settings.api_version, lifespan=lifespan)
app.state.relay = relay

register_exception_handlers(app)

# Starlette runs the LAST added middleware FIRST (outermost).
# We want:
# - RequestId + SecurityHeaders to apply even to CORS preflight + rate limit responses
# - CORS to handle preflight properly
# - RateLimit to be closest to the app (innermost)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount(settings.upload_url_prefix, StaticFiles(directory=settings.upload_dir), name="uploads")


@app.get("/")
def root():
    return {
        "success": True,
        "message": "EventHub API",
        "data": {"version": __version__, "docs": "/docs", "health": "/health"},
    }


@app.get("/health")
def health():
    return {"success": True, "data": {"status": "ok", "connected_users": relay.connected_count()}}


app.include_router(v1_router, prefix="/api/v1")

# Served by uvicorn: HTTP goes to FastAPI, /socket.io to the relay.
asgi_app = socketio.ASGIApp(relay.sio, other_asgi_app=app, socketio_path="socket.io")

"""Main FastAPI application"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import settings
from app.database import Base, engine
from app.exceptions import LabelCheckerError, label_checker_exception_handler
from app.middleware.security import SecurityHeadersMiddleware
from app.routes import (
    account, admin, auth, billing, dashboard, export, invitations, profile, scans, team,
)
from app.utils.limiter import limiter
from app.utils.storage import get_storage
from app.websocket import SCAN_EVENTS_CHANNEL, websocket_manager
from app.websocket import routes as websocket_routes

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

_redis_listener_task = None


async def redis_pubsub_listener():
    """
    Relay scan events published by Celery workers to the WebSocket
    clients subscribed to that scan.
    """
    import redis.asyncio as aioredis

    logger.info("Starting Redis pub/sub listener for scan events")
    redis_client = aioredis.from_url(settings.REDIS_URL)
    pubsub = redis_client.pubsub()
    try:
        await pubsub.subscribe(SCAN_EVENTS_CHANNEL)
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                data = json.loads(message["data"])
                if not isinstance(data, dict):
                    logger.warning(f"Ignoring non-object Redis message: {data!r}")
                    continue
                scan_id = data.get("scanId")
                if scan_id is not None:
                    await websocket_manager.broadcast(str(scan_id), data)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in Redis message: {e}")
            except Exception as e:
                logger.error(f"Error processing Redis message: {e}")
    except asyncio.CancelledError:
        logger.info("Redis pub/sub listener cancelled")
    except redis.RedisError as e:
        logger.error(f"Redis pub/sub listener error: {e}")
    finally:
        await pubsub.aclose()
        await redis_client.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    global _redis_listener_task

    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")

    _redis_listener_task = asyncio.create_task(redis_pubsub_listener())

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    if _redis_listener_task:
        _redis_listener_task.cancel()
        try:
            await _redis_listener_task
        except asyncio.CancelledError:
            pass


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Product label compliance checks for US, UK and EU marketplaces",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    swagger_ui_init_oauth={
        "clientId": "",
        "clientSecret": "",
        "usePkceWithAuthorizationCodeGrant": False
    }
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(LabelCheckerError, label_checker_exception_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(account.router)
app.include_router(dashboard.router)
app.include_router(export.router)
app.include_router(scans.router)
app.include_router(scans.uploads_router)
app.include_router(team.router)
app.include_router(invitations.router)
app.include_router(billing.router)
app.include_router(billing.webhook_router)
app.include_router(admin.router)
app.include_router(websocket_routes.router)

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "storage": "connected" if get_storage().health_check() else "unavailable",
        "websocketConnections": websocket_manager.get_connection_count(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )

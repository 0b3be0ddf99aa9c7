"""
Chat Sync Service - Main Entry Point
Conversation/message synchronization for the multi-channel support dashboard
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging

from chat_sync import __version__
from chat_sync.config import settings
from chat_sync.api import channels, media, status, webhook, websocket as ws_router
from chat_sync.services.status_store import get_status_store
from chat_sync.services.sync_service import get_sync_service, shutdown_sync_service

# Initialize logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def on_auto_resolved(resolved):
    await get_sync_service().handle_auto_resolved(resolved)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the auto-resolve sweep; stop change feeds on shutdown"""
    logger.info("🚀 Starting Chat Sync Service...")

    if not settings.is_supabase_configured:
        logger.warning("⚠️  Supabase is not configured - API calls will fail")
    if not settings.is_webhook_configured:
        logger.warning("⚠️  WEBHOOK_SECRET_KEY not set - webhook endpoint will reject requests")

    store = get_status_store()
    store.on_auto_resolve = on_auto_resolved
    sweep_task = asyncio.create_task(store.run_auto_resolve_loop())
    app.state.sweep_task = sweep_task

    yield

    logger.info("🛑 Shutting down Chat Sync Service...")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    await shutdown_sync_service()


app = FastAPI(
    title="Chat Sync Service",
    description="Channel registry, conversation status, realtime/polling sync and media migration for the support dashboard",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(channels.router)
app.include_router(status.router)
app.include_router(media.router)
app.include_router(webhook.router)
if settings.WEBSOCKET_ENABLED:
    app.include_router(ws_router.router)


@app.get("/", tags=["health"])
async def root():
    return {"service": "chat-sync", "version": __version__, "status": "ok"}


@app.get("/health", tags=["health"])
async def health():
    from chat_sync.services.websocket_service import get_connection_manager

    manager = get_connection_manager()
    return {
        "status": "healthy",
        "supabase_configured": settings.is_supabase_configured,
        "realtime_enabled": settings.REALTIME_ENABLED,
        "websocket_connections": manager.get_connection_count(),
        "watched_channels": manager.get_channels_with_connections(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)

"""
Emergency Signal Hub
Main FastAPI Application Entry Point

Initializes FastAPI, Socket.IO, the signal event store, the collaborators
and the coordination hub.
"""

import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
import socketio
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Create Socket.IO server
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,  # Reduce noise in production
    engineio_logger=False,
    ping_interval=25,
    ping_timeout=60
)

BACKEND_DIR = Path(__file__).parent.parent

START_TIME = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown"""

    # Startup
    print("=" * 60)
    print("[STARTUP] Emergency Signal Hub")
    print("=" * 60)

    # Initialize configuration
    from signal_hub.config import get_config
    cfg = get_config()
    print("[OK] Configuration loaded")

    # Initialize signal event store
    from signal_hub.database import init_db, SqlSignalEventSink, set_sink
    init_db()
    sink = SqlSignalEventSink()
    set_sink(sink)

    # Load signal catalog
    from signal_hub.services import (
        load_signal_catalog,
        create_notification_sender,
        create_route_provider,
    )
    catalog_path = Path(cfg.get('dispatch.catalog.path', 'data/traffic_lights.json'))
    if not catalog_path.is_absolute():
        catalog_path = BACKEND_DIR / catalog_path
    catalog = load_signal_catalog(catalog_path)
    print(f"[OK] Signal catalog loaded ({len(catalog)} signals)")

    # Collaborators
    notifier = create_notification_sender()
    route_provider = create_route_provider(
        provider=cfg.get('dispatch.route.provider', 'osrm'),
        base_url=os.getenv("OSRM_BASE_URL") or cfg.get('dispatch.route.osrmBaseUrl'),
        timeout=float(cfg.get('dispatch.route.timeoutSeconds', 10))
    )
    recipient = cfg.get('dispatch.notifications.recipient') or os.getenv("ADMIN_PHONE_NUMBER", "")
    print("[OK] Collaborators initialized")

    # Coordination hub and transports
    from signal_hub.emergency import CoordinationHub, set_hub
    from signal_hub.websocket import WebSocketHandlers, set_handlers

    hub = CoordinationHub(
        catalog=catalog,
        notifier=notifier,
        sink=sink,
        route_provider=route_provider,
        notification_recipient=recipient,
        **cfg.get_hub_settings()
    )
    await hub.start()
    set_hub(hub)

    set_handlers(WebSocketHandlers(sio, hub))
    print("[OK] Coordination hub started")

    print("=" * 60)
    print("[SERVER] Ready at http://localhost:8000")
    print("[DOCS] API docs at http://localhost:8000/docs")
    print("[WS] Socket.IO and ws://localhost:8000/ws ready for observers")
    print("=" * 60)

    yield

    # Shutdown
    print("[SHUTDOWN] Shutting down...")

    await hub.stop()
    set_hub(None)

    await notifier.close()
    await route_provider.close()
    set_sink(None)

    print("[SHUTDOWN] Complete")


# Create FastAPI application
app = FastAPI(
    title="Emergency Signal Hub API",
    description="Real-time coordination between emergency vehicles, dashboards and traffic signals",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Dashboards are served from several dev hosts
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Include API Routers
# ============================================

from signal_hub.api import request_router

# /accept-request, /reject-request, /api/cases/active, /api/signals/recent
app.include_router(request_router)


# ============================================
# Root Endpoints
# ============================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": "Emergency Signal Hub",
        "version": "1.0.0",
        "status": "operational",
        "documentation": "/docs",
        "websocket": "ws://localhost:8000/ws",
        "endpoints": {
            "accept": "/accept-request",
            "reject": "/reject-request",
            "active_case": "/api/cases/active",
            "recent_signals": "/api/signals/recent",
            "stats": "/ws/stats",
        }
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint"""
    from signal_hub.emergency import get_hub

    hub = get_hub()

    return {
        "status": "healthy" if hub and hub.is_running else "starting",
        "timestamp": time.time(),
        "uptime": time.time() - START_TIME,
        "websocket": {
            "connected_clients": len(hub.registry) if hub else 0,
            "status": "ready" if hub else "unavailable"
        }
    }


@app.get("/ws/stats", tags=["websocket"])
async def websocket_stats():
    """Get hub and observer statistics"""
    from signal_hub.emergency import get_hub

    hub = get_hub()

    return {
        "hub": hub.get_stats() if hub else None,
        "clients": {
            "count": len(hub.registry) if hub else 0,
            "connected": hub.registry.describe_connections() if hub else []
        },
        "timestamp": time.time()
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Raw WebSocket observer channel (same frames as Socket.IO `message`)"""
    from signal_hub.websocket import get_handlers

    handlers = get_handlers()
    if handlers is None:
        await websocket.close(code=1013)
        return

    await handlers.serve_websocket(websocket)


# ============================================
# Create Socket.IO ASGI app
# ============================================

sio_app = socketio.ASGIApp(sio, app)


# ============================================
# Message Reference (handled by CoordinationHub)
# ============================================
#
# Observer -> Hub (JSON text frames):
#   - emergencyRequest       : New emergency (legacy: {name, ...} without messageType)
#   - vehicleLocationUpdate  : Live vehicle position
#
# Hub -> Observer:
#   - emergencyRequest       : Relayed request with caseId and timestamp
#   - coordinateUpdate       : Vehicle position (live or simulated)
#   - trafficLightUpdate     : Signals newly in range, or reported signals
#   - requestStatus          : Route established for an accepted request


# ============================================
# Entry Point
# ============================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "signal_hub.main:sio_app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

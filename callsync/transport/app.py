"""
CallSync Application

FastAPI application exposing the session authority:
- REST endpoints for session creation/lookup, health and ICE config
- WebSocket endpoint (/ws) for signaling, presence and the countdown

Configuration is read from environment variables (see callsync.settings
and callsync.storage.factory). Environment variables can be loaded from
a .env file in the project root.

Run with:
    uvicorn callsync.transport.app:app --host 0.0.0.0 --port 3001
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, WebSocket

# Load environment variables from .env file
load_dotenv()

from callsync import __version__
from callsync.presence import PresenceTracker
from callsync.session import LifecycleController, SessionNotFound, SessionStore
from callsync.settings import ServiceSettings, settings_from_env
from callsync.signaling import SignalingRelay
from callsync.storage import SnapshotWriter, create_sink
from callsync.timer import TimerAuthority
from callsync.transport.handler import WebSocketHandler
from callsync.transport.queue import ConnectionQueueManager
from callsync.transport.schemas import (
    CreateSessionRequest,
    CreateSessionResponse,
    SessionInfoResponse,
    HealthResponse,
    TurnConfigResponse,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Components created at startup, shared by all requests."""
    store: SessionStore
    queue_manager: ConnectionQueueManager
    writer: SnapshotWriter
    lifecycle: LifecycleController
    presence: PresenceTracker
    relay: SignalingRelay
    timer: TimerAuthority
    handler: WebSocketHandler


async def build_services(settings: ServiceSettings) -> Services:
    """Wire up all components from settings (timer not started)."""
    sink = await create_sink(settings.storage)
    writer = SnapshotWriter(sink)
    await writer.start()

    store = SessionStore()
    queue_manager = ConnectionQueueManager(max_queue_size=settings.queue_size)
    lifecycle = LifecycleController(
        store=store,
        outbox=queue_manager,
        writer=writer,
        grace_period_seconds=settings.grace_period_seconds,
        warning_threshold_seconds=settings.warning_threshold_seconds,
    )
    presence = PresenceTracker(lifecycle)
    relay = SignalingRelay(lifecycle)
    timer = TimerAuthority(lifecycle, tick_interval_seconds=settings.tick_interval_seconds)
    handler = WebSocketHandler(
        lifecycle=lifecycle,
        presence=presence,
        relay=relay,
        queue_manager=queue_manager,
    )
    return Services(
        store=store,
        queue_manager=queue_manager,
        writer=writer,
        lifecycle=lifecycle,
        presence=presence,
        relay=relay,
        timer=timer,
        handler=handler,
    )


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service configuration; read from the environment if omitted
    """
    settings = settings or settings_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Initializes and tears down all components.
        """
        logger.info("Starting CallSync session authority...")

        services = await build_services(settings)
        app.state.services = services
        logger.info(
            f"Persistence: {'enabled' if services.writer.enabled else 'disabled'} "
            f"(backend: {settings.storage.backend.value})"
        )

        await services.timer.start()
        logger.info("CallSync started")

        yield

        logger.info("Shutting down CallSync...")
        await services.timer.stop()
        await services.lifecycle.stop()
        await services.queue_manager.shutdown()
        await services.writer.stop()
        logger.info("CallSync stopped")

    app = FastAPI(
        title="CallSync",
        description="Session authority for time-boxed two-party calls",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    def services_of(request: Request) -> Services:
        return request.app.state.services

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    async def create_session(body: CreateSessionRequest, request: Request):
        """Create a pending call session."""
        services = services_of(request)
        duration = body.duration_limit or settings.default_duration_minutes
        session = await services.store.create(
            duration_limit=duration,
            caller_id=body.caller_id,
            callee_id=body.callee_id,
        )
        services.lifecycle.persist(session)
        return CreateSessionResponse(
            session_id=session.id,
            channel_name=session.channel_name,
            caller_id=body.caller_id,
            callee_id=body.callee_id,
            duration_limit=duration,
        )

    @app.get("/api/sessions/{session_id}", response_model=SessionInfoResponse)
    async def get_session(session_id: str, request: Request):
        """Authoritative status and remaining time of a session."""
        services = services_of(request)
        try:
            session = await services.store.get(session_id)
        except SessionNotFound:
            raise HTTPException(status_code=404, detail="Session not found or expired")
        return SessionInfoResponse(
            id=session.id,
            caller_id=session.caller_id,
            callee_id=session.callee_id,
            duration_limit=session.duration_limit,
            status=session.status.value,
            time_remaining=session.time_remaining(services.lifecycle.now()),
            start_time=session.start_time,
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        services = services_of(request)
        return HealthResponse(
            active_sessions=services.store.session_count,
            running_sessions=services.store.running_count,
            connections=services.queue_manager.connection_count(),
        )

    @app.get("/api/turn-config", response_model=TurnConfigResponse)
    async def turn_config():
        """ICE servers for RTCPeerConnection."""
        return TurnConfigResponse(ice_servers=settings.ice.ice_servers())

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for participants.

        All signaling, presence and countdown traffic flows through here.
        """
        services = getattr(websocket.app.state, "services", None)
        if services is None:
            await websocket.close(code=1011, reason="Service not initialized")
            return

        await services.handler.handle_connection(websocket)

    return app


_settings = settings_from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = create_app(_settings)

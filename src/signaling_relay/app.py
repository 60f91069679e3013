from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .config import RelaySettings
from .gateway import SignalingGateway, create_socket_server
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)


class HealthOut(BaseModel):
    status: str
    timestamp: datetime

    model_config = {"json_schema_extra": {"examples": [{"status": "OK", "timestamp": "2026-02-18T12:00:00Z"}]}}


class StatusOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    broadcasters: list[str]
    viewers: int
    timestamp: int
    connections: int
    pending_sessions: int = Field(..., alias="pendingSessions")
    collisions: int


def create_app(cfg: RelaySettings, gateway: Optional[SignalingGateway] = None) -> FastAPI:
    """
    Create the HTTP side of the relay. The gateway lives on app.state so
    create_asgi_app() can hang the Socket.IO endpoint next to it.
    """
    if gateway is None:
        gateway = SignalingGateway(
            create_socket_server(cfg),
            PresenceRegistry(),
            session_timeout_sec=cfg.session_timeout_sec,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Signaling relay ready (allowed origin: %s)", cfg.frontend_url)
        yield
        app.state.gateway.router.close()
        logger.info("Shutting down signaling relay")

    app = FastAPI(
        title="Signaling Relay",
        version="0.1.0",
        description="WebRTC signaling relay between edge device cameras and dashboard viewers.",
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"status": "signaling relay running"}

    @app.get("/api/health", response_model=HealthOut, tags=["health"])
    def health() -> HealthOut:
        """Liveness check."""
        return HealthOut(status="OK", timestamp=datetime.now(timezone.utc))

    @app.get("/api/status", response_model=StatusOut, response_model_by_alias=True, tags=["signaling"])
    def status(request: Request) -> StatusOut:
        """Same snapshot as the get-status event, plus relay counters."""
        gw: SignalingGateway = request.app.state.gateway
        snapshot = gw.status_snapshot()
        return StatusOut(
            **snapshot,
            connections=gw.connection_count(),
            pending_sessions=gw.router.pending_count(),
            collisions=gw.registry.collisions,
        )

    return app


def create_asgi_app(cfg: RelaySettings) -> socketio.ASGIApp:
    """
    Single ASGI app: Socket.IO under /socket.io, FastAPI for everything else.
    """
    app = create_app(cfg)
    return socketio.ASGIApp(app.state.gateway.sio, other_asgi_app=app)

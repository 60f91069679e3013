from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Optional

import socketio
from pydantic import ValidationError

from .config import PING_INTERVAL_SEC, PING_TIMEOUT_SEC, RelaySettings
from .events import (
    INBOUND_PAYLOADS,
    ErrorCode,
    IceCandidateMessage,
    InboundEvent,
    OutboundEvent,
    RegisterBroadcaster,
    RegisterViewer,
    RequestStream,
    SdpMessage,
    StatusRequest,
    error_payload,
    now_ms,
)
from .registry import BroadcasterEntry, PresenceRegistry, ViewerEntry
from .router import SessionRouter

logger = logging.getLogger(__name__)


class Role(str, Enum):
    UNREGISTERED = "unregistered"
    BROADCASTER = "broadcaster"
    VIEWER = "viewer"


@dataclass
class Connection:
    """One Socket.IO session. Lives from connect to disconnect."""
    sid: str
    role: Role = Role.UNREGISTERED
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    viewer_id: Optional[str] = None


Handler = Callable[[Connection, Any], Awaitable[None]]


def create_socket_server(cfg: RelaySettings) -> socketio.AsyncServer:
    """
    Socket.IO server restricted to the dashboard origin.
    """
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=[cfg.frontend_url],
        ping_interval=PING_INTERVAL_SEC,
        ping_timeout=PING_TIMEOUT_SEC,
    )


class SignalingGateway:
    """
    Owns every Connection and dispatches inbound events to the registry
    and the router.

    The Socket.IO server and the registry are passed in so tests can build
    isolated instances. The router is private to the gateway, which acts as
    its transport.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        registry: PresenceRegistry,
        session_timeout_sec: float = 30.0,
    ) -> None:
        self.sio = sio
        self.registry = registry
        self.router = SessionRouter(registry, self, session_timeout_sec=session_timeout_sec)
        self._connections: dict[str, Connection] = {}

        self._handlers: dict[InboundEvent, Handler] = {
            InboundEvent.REGISTER_BROADCASTER: self._on_register_broadcaster,
            InboundEvent.REGISTER_VIEWER: self._on_register_viewer,
            InboundEvent.REQUEST_STREAM: self._on_request_stream,
            InboundEvent.OFFER: partial(self._on_relay, InboundEvent.OFFER),
            InboundEvent.ANSWER: partial(self._on_relay, InboundEvent.ANSWER),
            InboundEvent.ICE_CANDIDATE: partial(self._on_relay, InboundEvent.ICE_CANDIDATE),
            InboundEvent.GET_STATUS: self._on_get_status,
        }
        missing = set(InboundEvent) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for inbound events: {sorted(e.value for e in missing)}")

        self._attach()

    # --- Transport (used by the router) ---

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def send(self, event: OutboundEvent, data: Any, to: str) -> bool:
        if to not in self._connections:
            logger.debug("Dropping %s: connection %s is gone", event.value, to)
            return False
        await self.sio.emit(event.value, data, to=to)
        return True

    async def broadcast(self, event: OutboundEvent, data: Any, skip_sid: Optional[str] = None) -> None:
        """Send to every connection except skip_sid."""
        await self.sio.emit(event.value, data, skip_sid=skip_sid)

    # --- Lifecycle ---

    async def connect(self, sid: str) -> None:
        self._connections[sid] = Connection(sid=sid)
        logger.info("Client connected: %s", sid)

    async def disconnect(self, sid: str) -> None:
        conn = self._connections.pop(sid, None)
        if conn is None:
            return
        logger.info("Client disconnected: %s", sid)

        self.router.drop_connection(sid)
        self._release_viewer(conn)

        await self._announce_gone(conn, self._release_broadcaster(conn))

    async def dispatch(self, event: InboundEvent, sid: str, data: Any = None) -> None:
        """
        Validate and handle one inbound event.

        Failures stay inside this call: bad payloads are answered with an
        INVALID_PAYLOAD error, anything else is logged.
        """
        conn = self._connections.get(sid)
        if conn is None:
            logger.warning("Ignoring %s from unknown connection %s", event.value, sid)
            return

        try:
            payload = INBOUND_PAYLOADS[event].model_validate(data if data is not None else {})
        except ValidationError as e:
            logger.info("Rejected malformed %s from %s: %s", event.value, sid, e.errors())
            await self.send(
                OutboundEvent.ERROR,
                error_payload(
                    ErrorCode.INVALID_PAYLOAD,
                    f"Malformed {event.value} payload",
                    event=event.value,
                ),
                to=sid,
            )
            return

        try:
            await self._handlers[event](conn, payload)
        except Exception:
            logger.exception("Handler for %s failed (connection %s)", event.value, sid)

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "broadcasters": self.registry.list_broadcaster_ids(),
            "viewers": self.registry.viewer_count(),
            "timestamp": now_ms(),
        }

    def connection_count(self) -> int:
        return len(self._connections)

    def get_connection(self, sid: str) -> Optional[Connection]:
        return self._connections.get(sid)

    # --- Event handlers ---

    async def _on_register_broadcaster(self, conn: Connection, msg: RegisterBroadcaster) -> None:
        if conn.role is Role.VIEWER:
            self.router.drop_connection(conn.sid)
            self._release_viewer(conn)
        elif conn.device_id is not None and conn.device_id != msg.device_id:
            self.router.drop_connection(conn.sid)
            await self._announce_gone(conn, self._release_broadcaster(conn))

        conn.role = Role.BROADCASTER
        conn.device_id = msg.device_id
        conn.device_name = msg.device_name
        conn.viewer_id = None
        self.registry.add_broadcaster(conn.sid, msg.device_id, msg.device_name)

        logger.info("Broadcaster registered: %s (%s)", msg.device_id, msg.device_name)
        await self.broadcast(
            OutboundEvent.BROADCASTER_AVAILABLE,
            {"deviceId": msg.device_id, "deviceName": msg.device_name, "timestamp": now_ms()},
            skip_sid=conn.sid,
        )

    async def _on_register_viewer(self, conn: Connection, msg: RegisterViewer) -> None:
        if conn.role is Role.BROADCASTER:
            self.router.drop_connection(conn.sid)
            await self._announce_gone(conn, self._release_broadcaster(conn))
        elif conn.viewer_id is not None and conn.viewer_id != msg.viewer_id:
            self.router.drop_connection(conn.sid)
            self._release_viewer(conn)

        conn.role = Role.VIEWER
        conn.viewer_id = msg.viewer_id
        conn.device_id = None
        conn.device_name = None
        self.registry.add_viewer(conn.sid, msg.viewer_id)

        logger.info("Viewer registered: %s", msg.viewer_id)
        await self.send(
            OutboundEvent.AVAILABLE_BROADCASTERS,
            self.registry.list_broadcaster_ids(),
            to=conn.sid,
        )

    async def _on_request_stream(self, conn: Connection, msg: RequestStream) -> None:
        await self.router.handle_request_stream(conn.sid, conn.viewer_id, msg.device_id)

    async def _on_relay(
        self, kind: InboundEvent, conn: Connection, msg: SdpMessage | IceCandidateMessage
    ) -> None:
        body = msg.candidate if isinstance(msg, IceCandidateMessage) else msg.sdp
        await self.router.relay(kind, conn.sid, msg.target, body)

    async def _on_get_status(self, conn: Connection, msg: StatusRequest) -> None:
        await self.send(OutboundEvent.STATUS, self.status_snapshot(), to=conn.sid)

    # --- Helpers ---

    async def _announce_gone(self, conn: Connection, removed: Optional[BroadcasterEntry]) -> None:
        if removed is None:
            return
        logger.info("Broadcaster removed: %s", removed.device_id)
        await self.broadcast(
            OutboundEvent.BROADCASTER_DISCONNECTED,
            {"deviceId": removed.device_id, "timestamp": now_ms()},
            skip_sid=conn.sid,
        )

    def _release_broadcaster(self, conn: Connection) -> Optional[BroadcasterEntry]:
        if conn.device_id is None:
            return None
        return self.registry.remove_broadcaster(conn.device_id, connection_id=conn.sid)

    def _release_viewer(self, conn: Connection) -> Optional[ViewerEntry]:
        if conn.viewer_id is None:
            return None
        return self.registry.remove_viewer(conn.viewer_id, connection_id=conn.sid)

    def _attach(self) -> None:
        """Register the Socket.IO handlers, one per inbound event."""

        async def on_connect(sid, environ, auth=None):
            await self.connect(sid)

        async def on_disconnect(sid, reason=None):
            await self.disconnect(sid)

        self.sio.on("connect", on_connect)
        self.sio.on("disconnect", on_disconnect)

        for event in InboundEvent:
            self.sio.on(event.value, self._make_listener(event))

    def _make_listener(self, event: InboundEvent):
        async def listener(sid, data=None):
            await self.dispatch(event, sid, data)

        return listener

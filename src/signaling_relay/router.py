from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from .events import (
    RELAY_FIELDS,
    ErrorCode,
    InboundEvent,
    OutboundEvent,
    error_payload,
    now_ms,
)
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the router needs from the gateway to reach a connection."""

    def is_connected(self, connection_id: str) -> bool: ...

    async def send(self, event: OutboundEvent, data: Any, to: str) -> bool: ...


class SessionState(str, Enum):
    REQUESTING = "requesting"
    ESTABLISHED = "established"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PendingSession:
    """
    One viewer waiting on one broadcaster, from request-stream until the
    viewer's answer reaches the broadcaster.
    """
    viewer_connection_id: str
    broadcaster_connection_id: str
    device_id: str
    state: SessionState = SessionState.REQUESTING
    timer: Optional[asyncio.Task] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.viewer_connection_id, self.broadcaster_connection_id)


class SessionRouter:
    """
    Turns stream requests into directed signals and relays negotiation
    payloads by connection id. Payload contents are never inspected.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        transport: Transport,
        session_timeout_sec: float = 30.0,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.session_timeout_sec = session_timeout_sec
        self._pending: dict[tuple[str, str], PendingSession] = {}

    async def handle_request_stream(
        self, viewer_connection_id: str, viewer_id: Optional[str], device_id: str
    ) -> bool:
        """
        Ask the broadcaster of device_id to start negotiating with the viewer.

        Returns False (after telling the requester) if nobody broadcasts
        device_id. Never raises for a lookup miss.
        """
        broadcaster = self.registry.get_broadcaster(device_id)
        if broadcaster is None:
            logger.info(
                "Stream request from %s for unknown device %s", viewer_connection_id, device_id
            )
            await self.transport.send(
                OutboundEvent.ERROR,
                error_payload(
                    ErrorCode.BROADCASTER_NOT_FOUND,
                    f"Device {device_id} not available",
                ),
                to=viewer_connection_id,
            )
            return False

        if viewer_id is not None:
            self.registry.set_viewer_target(viewer_id, device_id)

        logger.info("Viewer %s requesting stream from %s", viewer_connection_id, device_id)
        self._open_session(viewer_connection_id, broadcaster.connection_id, device_id)

        await self.transport.send(
            OutboundEvent.VIEWER_READY,
            {"viewerId": viewer_connection_id, "timestamp": now_ms()},
            to=broadcaster.connection_id,
        )
        return True

    async def relay(
        self, kind: InboundEvent, sender_connection_id: str, target: str, payload: Any
    ) -> bool:
        """
        Forward payload to target as {<field>: payload, sender}.

        A dead or unknown target drops the message silently.
        """
        field_name = RELAY_FIELDS[kind]
        event = OutboundEvent(kind.value)

        if not self.transport.is_connected(target):
            logger.debug(
                "Dropping %s from %s: target %s is not connected", kind.value, sender_connection_id, target
            )
            return False

        logger.debug("Relaying %s from %s to %s", kind.value, sender_connection_id, target)
        delivered = await self.transport.send(
            event, {field_name: payload, "sender": sender_connection_id}, to=target
        )

        if delivered and kind is InboundEvent.ANSWER:
            self._complete_session(sender_connection_id, target)
        return delivered

    def drop_connection(self, connection_id: str) -> int:
        """Cancel every pending session the connection takes part in."""
        keys = [key for key in self._pending if connection_id in key]
        for key in keys:
            session = self._pending.pop(key)
            self._stop_timer(session, SessionState.CANCELLED)
        if keys:
            logger.debug("Cancelled %d pending session(s) for %s", len(keys), connection_id)
        return len(keys)

    def pending_count(self) -> int:
        return len(self._pending)

    def get_session(self, viewer_connection_id: str, broadcaster_connection_id: str) -> Optional[PendingSession]:
        return self._pending.get((viewer_connection_id, broadcaster_connection_id))

    def close(self) -> None:
        """Cancel all timers (server shutdown)."""
        for session in self._pending.values():
            self._stop_timer(session, SessionState.CANCELLED)
        self._pending.clear()

    # --- Pending session bookkeeping ---

    def _open_session(self, viewer_id: str, broadcaster_id: str, device_id: str) -> None:
        session = PendingSession(
            viewer_connection_id=viewer_id,
            broadcaster_connection_id=broadcaster_id,
            device_id=device_id,
        )

        # Repeated request for the same pair restarts the clock.
        previous = self._pending.pop(session.key, None)
        if previous is not None:
            self._stop_timer(previous, SessionState.CANCELLED)

        if self.session_timeout_sec > 0:
            session.timer = asyncio.create_task(self._expire(session))
        self._pending[session.key] = session

    def _complete_session(self, viewer_id: str, broadcaster_id: str) -> None:
        session = self._pending.pop((viewer_id, broadcaster_id), None)
        if session is None:
            return
        self._stop_timer(session, SessionState.ESTABLISHED)
        logger.info("Negotiation answered: viewer %s <-> %s", viewer_id, session.device_id)

    @staticmethod
    def _stop_timer(session: PendingSession, state: SessionState) -> None:
        session.state = state
        if session.timer is not None and not session.timer.done():
            session.timer.cancel()

    async def _expire(self, session: PendingSession) -> None:
        await asyncio.sleep(self.session_timeout_sec)

        if self._pending.get(session.key) is not session:
            return
        del self._pending[session.key]
        session.state = SessionState.TIMED_OUT

        logger.warning(
            "Negotiation between viewer %s and device %s timed out after %ss",
            session.viewer_connection_id, session.device_id, self.session_timeout_sec,
        )
        await self.transport.send(
            OutboundEvent.ERROR,
            error_payload(
                ErrorCode.NEGOTIATION_TIMEOUT,
                f"Device {session.device_id} did not complete negotiation in time",
                deviceId=session.device_id,
            ),
            to=session.viewer_connection_id,
        )

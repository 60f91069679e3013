"""
Wire vocabulary of the signaling channel.

Inbound events form a closed set (InboundEvent); each one has exactly one
payload model in INBOUND_PAYLOADS. Field names follow the camelCase used by
the Android and browser clients.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(str, Enum):
    REGISTER_BROADCASTER = "register-broadcaster"
    REGISTER_VIEWER = "register-viewer"
    REQUEST_STREAM = "request-stream"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    GET_STATUS = "get-status"


class OutboundEvent(str, Enum):
    BROADCASTER_AVAILABLE = "broadcaster-available"
    BROADCASTER_DISCONNECTED = "broadcaster-disconnected"
    AVAILABLE_BROADCASTERS = "available-broadcasters"
    VIEWER_READY = "viewer-ready"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    ERROR = "error"
    STATUS = "status"


class ErrorCode(str, Enum):
    BROADCASTER_NOT_FOUND = "BROADCASTER_NOT_FOUND"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    NEGOTIATION_TIMEOUT = "NEGOTIATION_TIMEOUT"


def now_ms() -> int:
    """Milliseconds since the Unix epoch, the clients' timestamp unit."""
    return int(time.time() * 1000)


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegisterBroadcaster(_Payload):
    device_id: str = Field(..., alias="deviceId", min_length=1)
    device_name: Optional[str] = Field(None, alias="deviceName")


class RegisterViewer(_Payload):
    viewer_id: str = Field(..., alias="viewerId", min_length=1)


class RequestStream(_Payload):
    device_id: str = Field(..., alias="deviceId", min_length=1)


class SdpMessage(_Payload):
    """Offer or answer. The SDP body is opaque and forwarded untouched."""

    target: str = Field(..., min_length=1)
    sdp: Any = Field(...)


class IceCandidateMessage(_Payload):
    target: str = Field(..., min_length=1)
    candidate: Any = Field(...)


class StatusRequest(_Payload):
    pass


INBOUND_PAYLOADS: dict[InboundEvent, type[_Payload]] = {
    InboundEvent.REGISTER_BROADCASTER: RegisterBroadcaster,
    InboundEvent.REGISTER_VIEWER: RegisterViewer,
    InboundEvent.REQUEST_STREAM: RequestStream,
    InboundEvent.OFFER: SdpMessage,
    InboundEvent.ANSWER: SdpMessage,
    InboundEvent.ICE_CANDIDATE: IceCandidateMessage,
    InboundEvent.GET_STATUS: StatusRequest,
}

# Relay kinds map 1:1 onto outbound event names and carry one opaque field.
RELAY_FIELDS: dict[InboundEvent, str] = {
    InboundEvent.OFFER: "sdp",
    InboundEvent.ANSWER: "sdp",
    InboundEvent.ICE_CANDIDATE: "candidate",
}


def error_payload(code: ErrorCode, message: str, **extra: Any) -> dict[str, Any]:
    return {"code": code.value, "message": message, **extra}

"""
Shared fixtures for signaling relay tests.

FakeSocketServer stands in for socketio.AsyncServer: it keeps the handlers
the gateway registers, lets tests play connect/event/disconnect for a sid,
and records every emit in a per-sid inbox.
"""
from collections import defaultdict

import pytest

from signaling_relay.gateway import SignalingGateway
from signaling_relay.registry import PresenceRegistry


class FakeSocketServer:
    def __init__(self):
        self.handlers = {}
        self.connected = []
        self.inbox = defaultdict(list)

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def emit(self, event, data=None, to=None, room=None, skip_sid=None, namespace=None):
        target = to or room
        recipients = [target] if target is not None else list(self.connected)
        for sid in recipients:
            if sid == skip_sid or sid not in self.connected:
                continue
            self.inbox[sid].append((event, data))

    # --- Client-side helpers ---

    async def connect(self, sid):
        self.connected.append(sid)
        await self.handlers["connect"](sid, {})

    async def send(self, sid, event, data=None):
        if data is None:
            await self.handlers[event](sid)
        else:
            await self.handlers[event](sid, data)

    async def disconnect(self, sid):
        self.connected.remove(sid)
        await self.handlers["disconnect"](sid, "client disconnect")

    def received(self, sid, event=None):
        if event is None:
            return list(self.inbox[sid])
        return [data for name, data in self.inbox[sid] if name == event]

    def clear(self):
        self.inbox.clear()


@pytest.fixture
def sio():
    return FakeSocketServer()


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def gateway(sio, registry):
    gw = SignalingGateway(sio, registry, session_timeout_sec=0)
    yield gw
    gw.router.close()

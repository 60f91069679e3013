"""
Signaling relay package.

This package contains the live-stream signaling service that:
- tracks which edge devices are broadcasting and which dashboards are watching
- matches a viewer's stream request to the right broadcaster
- relays SDP offers/answers and ICE candidates between the two peers
- exposes small HTTP health/status endpoints next to the Socket.IO endpoint
"""

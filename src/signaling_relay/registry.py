"""
In-memory presence registry: who is broadcasting and who is watching.

Only ever mutated from the event loop's dispatch path, so no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class BroadcasterEntry:
    device_id: str
    connection_id: str
    device_name: Optional[str] = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ViewerEntry:
    viewer_id: str
    connection_id: str
    watching_device_id: Optional[str] = None


class PresenceRegistry:
    """
    Authoritative record of active broadcasters (by deviceId) and viewers
    (by viewerId). Last registration of a given id wins.
    """

    def __init__(self) -> None:
        self._broadcasters: dict[str, BroadcasterEntry] = {}
        self._viewers: dict[str, ViewerEntry] = {}
        self.collisions = 0

    # --- Broadcasters ---

    def add_broadcaster(
        self, connection_id: str, device_id: str, device_name: Optional[str] = None
    ) -> Optional[BroadcasterEntry]:
        """
        Insert or overwrite the entry for device_id.

        Returns the displaced entry, if any. Takeover by a different
        connection is counted and logged but still allowed.
        """
        previous = self._broadcasters.get(device_id)
        if previous is not None and previous.connection_id != connection_id:
            self.collisions += 1
            logger.warning(
                "deviceId %s re-registered by connection %s (was %s); newest registration wins",
                device_id, connection_id, previous.connection_id,
            )

        self._broadcasters[device_id] = BroadcasterEntry(
            device_id=device_id,
            connection_id=connection_id,
            device_name=device_name,
        )
        return previous

    def remove_broadcaster(
        self, device_id: str, connection_id: Optional[str] = None
    ) -> Optional[BroadcasterEntry]:
        """
        Delete the entry for device_id. Idempotent.

        If connection_id is given, the entry is only removed while that
        connection still owns it.
        """
        entry = self._broadcasters.get(device_id)
        if entry is None:
            return None
        if connection_id is not None and entry.connection_id != connection_id:
            return None
        return self._broadcasters.pop(device_id)

    def get_broadcaster(self, device_id: str) -> Optional[BroadcasterEntry]:
        return self._broadcasters.get(device_id)

    def list_broadcaster_ids(self) -> list[str]:
        return list(self._broadcasters)

    # --- Viewers ---

    def add_viewer(self, connection_id: str, viewer_id: str) -> None:
        self._viewers[viewer_id] = ViewerEntry(viewer_id=viewer_id, connection_id=connection_id)

    def set_viewer_target(self, viewer_id: str, device_id: str) -> None:
        viewer = self._viewers.get(viewer_id)
        if viewer is not None:
            viewer.watching_device_id = device_id

    def remove_viewer(
        self, viewer_id: str, connection_id: Optional[str] = None
    ) -> Optional[ViewerEntry]:
        entry = self._viewers.get(viewer_id)
        if entry is None:
            return None
        if connection_id is not None and entry.connection_id != connection_id:
            return None
        return self._viewers.pop(viewer_id)

    def get_viewer(self, viewer_id: str) -> Optional[ViewerEntry]:
        return self._viewers.get(viewer_id)

    def viewer_count(self) -> int:
        return len(self._viewers)

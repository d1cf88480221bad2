"""Notification dispatcher contract and its file-based implementation.

The moderation engine only depends on :class:`NotificationDispatcher`.
:class:`NotificationStore` is the default implementation: it appends records
to ``~/.freeco/notifications/notifications.json`` so users can read them
later. There is no real-time delivery.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from freeco.entities.models import EntityFamily, utcnow_iso
from freeco.moderation.errors import DispatchFailure, StoreFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelatedEntity:
    """Reference from a notification to the entity it describes."""

    id: str
    family: EntityFamily


@dataclass
class Notification:
    """A persisted notification for one recipient."""

    id: str
    recipient: str
    type: str
    title: str
    message: str
    related_family: str = ""
    related_id: str = ""
    read: bool = False
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow_iso()


def title_from_message(message: str) -> str:
    """The title is the message text before the first colon."""
    return message.split(":")[0].strip() or message


class NotificationDispatcher(ABC):
    """Contract the moderation engine uses to record notifications."""

    @abstractmethod
    async def notify(
        self,
        recipient_id: str,
        event_type: str,
        message: str,
        related: Optional[RelatedEntity] = None,
    ) -> Notification:
        """Durably record a notification. Raises ``DispatchFailure`` on error."""


class NotificationStore(NotificationDispatcher):
    """File-based storage for notifications.

    Storage path: ``~/.freeco/notifications/`` with:
    - ``notifications.json`` -- list of notification dicts
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".freeco" / "notifications"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = self._base / "notifications.json"
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to read %s: %s", self._path, exc)
            raise StoreFailure() from exc
        return data if isinstance(data, list) else []

    def _write_json(self, data: list[dict[str, Any]]) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._base, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self._path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self._path, exc)
            raise StoreFailure() from exc

    @staticmethod
    def _from_dict(d: dict[str, Any]) -> Notification:
        return Notification(
            **{k: v for k, v in d.items() if k in Notification.__dataclass_fields__}
        )

    def _append_sync(self, notification: Notification) -> None:
        with self._lock:
            data = self._read_json()
            data.append(asdict(notification))
            self._write_json(data)

    def _list_sync(self, recipient_id: str, unread_only: bool) -> list[Notification]:
        with self._lock:
            items = [
                self._from_dict(d)
                for d in self._read_json()
                if d.get("recipient") == recipient_id
            ]
        if unread_only:
            items = [n for n in items if not n.read]
        items.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return items

    def _mark_read_sync(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        with self._lock:
            data = self._read_json()
            for d in data:
                if d.get("id") == notification_id and d.get("recipient") == recipient_id:
                    d["read"] = True
                    self._write_json(data)
                    return self._from_dict(d)
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def notify(
        self,
        recipient_id: str,
        event_type: str,
        message: str,
        related: Optional[RelatedEntity] = None,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex,
            recipient=recipient_id,
            type=event_type,
            title=title_from_message(message),
            message=message,
            related_family=related.family.value if related else "",
            related_id=related.id if related else "",
        )
        try:
            await asyncio.to_thread(self._append_sync, notification)
        except StoreFailure as exc:
            raise DispatchFailure(f"Could not record {event_type} for {recipient_id}") from exc
        logger.debug("Recorded %s notification for %s", event_type, recipient_id)
        return notification

    async def list_for(self, recipient_id: str, unread_only: bool = False) -> list[Notification]:
        """Return the recipient's notifications, newest first."""
        return await asyncio.to_thread(self._list_sync, recipient_id, unread_only)

    async def mark_read(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        """Mark one of the recipient's notifications as read. Returns None if absent."""
        return await asyncio.to_thread(self._mark_read_sync, recipient_id, notification_id)

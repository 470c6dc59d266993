from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Notification


class NotificationLog(Protocol):
    def add(self, notification: Notification) -> Notification:
        raise NotImplementedError

    def exists(self, *, type: str, recipient_id: Optional[int] = None, reference: Optional[str] = None) -> bool:
        raise NotImplementedError

    def delete_matching(
        self, *, type: str, recipient_id: int, reference: str, since: Optional[datetime] = None
    ) -> int:
        raise NotImplementedError

    def list_for_recipient(self, recipient_id: int, *, limit: int = 100) -> Sequence[Notification]:
        raise NotImplementedError


class NotificationChannel(Protocol):
    """Delivery channel owned by the notification subsystem."""

    def deliver(self, *, recipient_id: int, type: str, message: str) -> None:
        raise NotImplementedError

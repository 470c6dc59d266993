from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from ..common.datetime_utils import now_local
from .model import Notification
from .repository import NotificationChannel, NotificationLog

logger = logging.getLogger(__name__)


class LoggingChannel(NotificationChannel):
    """Default channel: hands the message to the log only."""

    def deliver(self, *, recipient_id: int, type: str, message: str) -> None:
        logger.info("Notify %s [%s]: %s", recipient_id, type, message)


class Notifier:
    """Best-effort notification sender.

    Failures are logged and swallowed so they never roll back the caller's
    mutation.
    """

    def __init__(
        self,
        log: NotificationLog,
        channel: Optional[NotificationChannel] = None,
        *,
        clock: Callable[[], datetime] = now_local,
    ):
        self._log = log
        self._channel = channel or LoggingChannel()
        self._clock = clock

    def send(
        self,
        recipient_id: Optional[int],
        type: Union[str, Enum],
        message: str,
        *,
        reference: Optional[str] = None,
    ) -> Optional[Notification]:
        kind = type.value if isinstance(type, Enum) else str(type)
        if recipient_id is None:
            logger.warning("Dropping %s notification without recipient: %s", kind, message)
            return None
        try:
            entry = self._log.add(
                Notification(
                    notification_id=0,
                    recipient_id=int(recipient_id),
                    type=kind,
                    message=message,
                    created_at=self._clock(),
                    reference=reference,
                )
            )
            self._channel.deliver(recipient_id=int(recipient_id), type=kind, message=message)
            return entry
        except Exception:
            logger.warning("Failed to send %s notification to %s", kind, recipient_id, exc_info=True)
            return None

    def already_sent(self, type: Union[str, Enum], *, recipient_id: Optional[int] = None, reference: Optional[str] = None) -> bool:
        kind = type.value if isinstance(type, Enum) else str(type)
        return self._log.exists(type=kind, recipient_id=recipient_id, reference=reference)

    def retract(
        self,
        type: Union[str, Enum],
        *,
        recipient_id: int,
        reference: str,
        since: Optional[datetime] = None,
    ) -> int:
        """Delete logged notifications of one type about one referenced entity."""

        kind = type.value if isinstance(type, Enum) else str(type)
        try:
            return self._log.delete_matching(type=kind, recipient_id=recipient_id, reference=reference, since=since)
        except Exception:
            logger.warning("Failed to clean up %s notifications for %s (%s)", kind, recipient_id, reference, exc_info=True)
            return 0

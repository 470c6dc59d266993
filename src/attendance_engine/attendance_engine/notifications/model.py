from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class NotificationType(str, Enum):
    MISSED_PUNCH = "MISSED_PUNCH"
    SHORT_TIME = "SHORT_TIME"
    LATE_ARRIVAL = "LATE_ARRIVAL"
    OVERTIME_REQUEST = "OVERTIME_REQUEST"
    REPEATED_LATENESS = "REPEATED_LATENESS"
    TIME_EXCEPTION_ESCALATED = "TIME_EXCEPTION_ESCALATED"
    CORRECTION_IN_REVIEW = "CORRECTION_IN_REVIEW"
    CORRECTION_APPROVED = "CORRECTION_APPROVED"
    CORRECTION_REJECTED = "CORRECTION_REJECTED"
    CORRECTION_ESCALATED = "CORRECTION_ESCALATED"
    BREAK_PERMISSION_APPROVED = "BREAK_PERMISSION_APPROVED"
    BREAK_PERMISSION_REJECTED = "BREAK_PERMISSION_REJECTED"
    SHIFT_EXPIRY = "SHIFT_EXPIRY"


@dataclass(frozen=True)
class Notification:
    """Log entry of a notification handed to the delivery channel.

    ``reference`` (e.g. ``"exception:12"``) is the idempotency marker used by
    sweeps to avoid notifying twice about the same entity.
    """

    notification_id: int
    recipient_id: int
    type: str
    message: str
    created_at: datetime
    reference: Optional[str] = None

from __future__ import annotations

from enum import Enum


class PunchType(str, Enum):
    """Direction of a punch."""

    IN = "IN"
    OUT = "OUT"


class PunchPolicy(str, Enum):
    """How repeated punches on one shift-day are stored."""

    FIRST_LAST = "FIRST_LAST"
    MULTIPLE = "MULTIPLE"


class TimeExceptionType(str, Enum):
    LATE = "LATE"
    MISSED_PUNCH = "MISSED_PUNCH"
    SHORT_TIME = "SHORT_TIME"
    OVERTIME_REQUEST = "OVERTIME_REQUEST"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"
    BREAK_PERMISSION = "BREAK_PERMISSION"

    @property
    def is_ephemeral(self) -> bool:
        """Ephemeral exceptions are deleted once their condition clears."""
        return self in {TimeExceptionType.MISSED_PUNCH, TimeExceptionType.SHORT_TIME}


class TimeExceptionStatus(str, Enum):
    OPEN = "OPEN"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"


class CorrectionStatus(str, Enum):
    """Review workflow status of a correction request."""

    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ESCALATED = "ESCALATED"

    @property
    def is_open(self) -> bool:
        return self in {CorrectionStatus.SUBMITTED, CorrectionStatus.IN_REVIEW}

    @property
    def blocks_payroll(self) -> bool:
        return self in {CorrectionStatus.SUBMITTED, CorrectionStatus.IN_REVIEW, CorrectionStatus.ESCALATED}


class CorrectionKind(str, Enum):
    MISSING_PUNCH_IN = "MISSING_PUNCH_IN"
    MISSING_PUNCH_OUT = "MISSING_PUNCH_OUT"
    INCORRECT_PUNCH_IN = "INCORRECT_PUNCH_IN"
    INCORRECT_PUNCH_OUT = "INCORRECT_PUNCH_OUT"

    @property
    def punch_type(self) -> PunchType:
        return PunchType.IN if self.value.endswith("_IN") else PunchType.OUT

    @property
    def is_incorrect(self) -> bool:
        return self.value.startswith("INCORRECT_")


class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class WindowMatch(str, Enum):
    """Which calendar day the matched shift window is anchored on."""

    SAME_DAY = "SAME_DAY"
    PREVIOUS_DAY = "PREVIOUS_DAY"


class ReviewAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class AdHocKind(str, Enum):
    PERMISSION = "PERMISSION"
    OVERTIME = "OVERTIME"


class IssueSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

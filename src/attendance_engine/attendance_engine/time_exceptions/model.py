from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..core.enums import TimeExceptionStatus, TimeExceptionType


@dataclass(frozen=True)
class TimeException:
    """Domain entity: a time exception tied to an attendance record.

    ``minutes`` carries the measured magnitude (late, short or overtime
    minutes) when the engine created it.
    """

    exception_id: int
    employee_id: int
    attendance_record_id: Optional[int]
    type: TimeExceptionType
    status: TimeExceptionStatus
    reason: str
    created_at: datetime
    assigned_to: Optional[int] = None
    minutes: Optional[int] = None
    updated_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None

    @property
    def is_unresolved(self) -> bool:
        return self.status not in {TimeExceptionStatus.RESOLVED, TimeExceptionStatus.REJECTED}


@dataclass(frozen=True)
class BreakPermission(TimeException):
    """Approvable carve-out of worked time; distinct from SHORT_TIME."""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: int = 0

    @property
    def is_unresolved(self) -> bool:
        return self.status == TimeExceptionStatus.PENDING


def approved_break_minutes(exceptions: Iterable[TimeException]) -> int:
    return sum(
        int(e.duration_minutes)
        for e in exceptions
        if isinstance(e, BreakPermission) and e.status == TimeExceptionStatus.APPROVED
    )

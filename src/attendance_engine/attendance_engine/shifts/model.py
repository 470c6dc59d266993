from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Union

from ..core.enums import AssignmentStatus, PunchPolicy

TimeValue = Union[time, str, None]


@dataclass(frozen=True)
class Shift:
    """Domain entity: a work shift.

    ``start_time``/``end_time`` are kept as delivered by the shift catalogue so
    the resolver can report malformed configuration instead of crashing.
    ``grace_in_minutes`` of None means "use the active lateness rule".
    """

    shift_id: int
    shift_name: str
    start_time: TimeValue
    end_time: TimeValue
    grace_in_minutes: Optional[int] = None
    grace_out_minutes: int = 0
    punch_policy: PunchPolicy = PunchPolicy.FIRST_LAST
    requires_overtime_approval: bool = False


@dataclass(frozen=True)
class ShiftAssignment:
    """Shift assignment: mapping of an employee to a shift for a date range."""

    assignment_id: int
    employee_id: int
    shift_id: int
    status: AssignmentStatus
    start_date: date
    end_date: Optional[date] = None
    schedule_rule_id: Optional[int] = None

    def covers(self, day: date) -> bool:
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


@dataclass(frozen=True)
class ScheduleRule:
    """Day-eligibility rule, e.g. pattern ``WEEKLY:MON,TUE,WED,THU,FRI``."""

    rule_id: int
    name: str
    pattern: str
    active: bool = True


@dataclass(frozen=True)
class LatenessRule:
    rule_id: int
    name: str
    grace_period_minutes: int = 0
    window_days: Optional[int] = None
    threshold: Optional[int] = None
    active: bool = True


@dataclass(frozen=True)
class OvertimeRule:
    rule_id: int
    name: str
    approved: bool = False
    active: bool = True

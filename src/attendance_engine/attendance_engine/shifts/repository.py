from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from .model import LatenessRule, ScheduleRule, Shift, ShiftAssignment


class ShiftRepository(Protocol):
    """Read-only view over shift configuration owned by another subsystem."""

    def get_by_id(self, shift_id: int) -> Optional[Shift]:
        raise NotImplementedError

    def list_assignments_for_employee(self, employee_id: int) -> Sequence[ShiftAssignment]:
        raise NotImplementedError

    def list_assignments_ending_between(self, start: date, end: date) -> Sequence[ShiftAssignment]:
        raise NotImplementedError

    def get_schedule_rule(self, rule_id: int) -> Optional[ScheduleRule]:
        raise NotImplementedError

    def get_active_lateness_rule(self, name: Optional[str] = None) -> Optional[LatenessRule]:
        raise NotImplementedError

    def has_active_overtime_approval(self) -> bool:
        raise NotImplementedError


class HolidayCalendar(Protocol):
    def is_holiday(self, day: date) -> bool:
        raise NotImplementedError

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Sequence, Tuple

from ..common.datetime_utils import ceil_minutes, day_bounds, normalize_time
from ..core.enums import AssignmentStatus, WindowMatch
from ..core.exceptions import ShiftWindowError
from .model import Shift, ShiftAssignment
from .repository import HolidayCalendar, ShiftRepository

logger = logging.getLogger(__name__)

_WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

_ASSIGNMENT_MESSAGES = {
    AssignmentStatus.PENDING: "Your shift assignment for this date is still pending approval",
    AssignmentStatus.CANCELLED: "Your shift assignment for this date has been cancelled",
    AssignmentStatus.EXPIRED: "Your shift assignment for this date has expired",
}


@dataclass(frozen=True)
class ShiftWindow:
    """A resolved shift occurrence and the punch window around it."""

    shift: Shift
    assignment: ShiftAssignment
    match: WindowMatch
    anchor_date: date
    scheduled_start: datetime
    scheduled_end: datetime
    window_start: datetime
    window_end: datetime

    def contains(self, at: datetime) -> bool:
        return self.window_start <= at <= self.window_end


def shift_times(shift: Shift) -> Tuple[time, time]:
    """Return (start, end) or raise ShiftWindowError for malformed values."""

    if shift.start_time in (None, "") or shift.end_time in (None, ""):
        raise ShiftWindowError(
            f"Shift '{shift.shift_name}' has no start or end time configured",
            rule="SHIFT_TIMES_MISSING",
        )
    try:
        start = normalize_time(shift.start_time)
        end = normalize_time(shift.end_time)
    except (TypeError, ValueError):
        raise ShiftWindowError(
            f"Shift '{shift.shift_name}' has invalid start/end time configuration",
            rule="SHIFT_TIMES_INVALID",
        )
    return start, end


def shift_span(shift: Shift, anchor: date) -> Tuple[datetime, datetime]:
    """Scheduled start/end for the occurrence starting on ``anchor``.

    An end at or before the start means the shift ends the next day.
    """

    start_t, end_t = shift_times(shift)
    start = datetime.combine(anchor, start_t)
    end = datetime.combine(anchor, end_t)
    if end <= start:
        end += timedelta(days=1)
    return start, end


class ShiftWindowResolver:
    def __init__(self, shifts: ShiftRepository, holidays: HolidayCalendar):
        self._shifts = shifts
        self._holidays = holidays

    # --- collaborator-facing helpers ---------------------------------------

    def is_holiday(self, day: date) -> bool:
        return bool(self._holidays.is_holiday(day))

    def is_weekly_rest_day(self, employee_id: int, day: date) -> bool:
        assignment = self._approved_assignment(employee_id, day)
        if not assignment:
            return False
        return not self._is_eligible_day(assignment, day)

    def is_non_working_day(self, employee_id: int, day: date) -> bool:
        return self.is_holiday(day) or self.is_weekly_rest_day(employee_id, day)

    def effective_shift(self, employee_id: int, day: date) -> Optional[Tuple[Shift, ShiftAssignment]]:
        """Approved shift for the day, or None when it is missing or malformed."""

        assignment = self._approved_assignment(employee_id, day)
        if not assignment:
            return None
        shift = self._shifts.get_by_id(assignment.shift_id)
        if not shift:
            return None
        try:
            shift_times(shift)
        except ShiftWindowError:
            logger.warning("Shift %s has malformed times; ignoring for day %s", shift.shift_id, day)
            return None
        return shift, assignment

    def grace_in_minutes(self, shift: Shift) -> int:
        if shift.grace_in_minutes is not None:
            return max(0, int(shift.grace_in_minutes))
        rule = self._shifts.get_active_lateness_rule()
        if rule:
            return max(0, int(rule.grace_period_minutes))
        return 0

    def scheduled_minutes(self, shift: Shift, day: date) -> int:
        """Minutes of the shift that fall inside the calendar day."""

        start, end = shift_span(shift, day)
        day_start, day_end = day_bounds(day)
        overlap_start = max(start, day_start)
        overlap_end = min(end, day_end)
        if overlap_end <= overlap_start:
            return 0
        return ceil_minutes(overlap_start, overlap_end)

    # --- resolution ---------------------------------------------------------

    def resolve(self, employee_id: int, at: datetime) -> ShiftWindow:
        day = at.date()
        if self.is_holiday(day):
            raise ShiftWindowError("Cannot punch on a holiday", rule="HOLIDAY")

        assignments = list(self._shifts.list_assignments_for_employee(employee_id))
        candidates: list[ShiftWindow] = []
        rest_day_blocked = False

        for match, anchor in ((WindowMatch.PREVIOUS_DAY, day - timedelta(days=1)), (WindowMatch.SAME_DAY, day)):
            assignment = self._pick_approved(assignments, anchor)
            if not assignment:
                continue
            if not self._is_eligible_day(assignment, anchor):
                if match == WindowMatch.SAME_DAY:
                    rest_day_blocked = True
                continue
            window = self._build_window(assignment, match, anchor)
            if window.contains(at):
                candidates.append(window)

        if candidates:
            # Previous-day (overnight) occurrence wins when both contain the punch.
            chosen = candidates[0]
            logger.debug(
                "Resolved punch %s for employee %s to shift %s (%s)",
                at, employee_id, chosen.shift.shift_id, chosen.match.value,
            )
            return chosen

        if rest_day_blocked:
            raise ShiftWindowError("Cannot punch on a weekly rest day for your schedule", rule="WEEKLY_REST")

        same_day = self._pick_approved(assignments, day)
        if not same_day:
            self._raise_for_missing_assignment(assignments, day)

        window = self._build_window(same_day, WindowMatch.SAME_DAY, day)
        raise ShiftWindowError(
            "Cannot add punch outside the allowed shift window "
            f"({window.window_start:%H:%M} - {window.window_end:%H:%M})",
            rule="OUTSIDE_WINDOW",
        )

    def _build_window(self, assignment: ShiftAssignment, match: WindowMatch, anchor: date) -> ShiftWindow:
        shift = self._shifts.get_by_id(assignment.shift_id)
        if not shift:
            raise ShiftWindowError("The shift for your assignment could not be found", rule="SHIFT_NOT_FOUND")
        start, end = shift_span(shift, anchor)
        grace_in = self.grace_in_minutes(shift)
        grace_out = max(0, int(shift.grace_out_minutes or 0))
        return ShiftWindow(
            shift=shift,
            assignment=assignment,
            match=match,
            anchor_date=anchor,
            scheduled_start=start,
            scheduled_end=end,
            window_start=start - timedelta(minutes=grace_in),
            window_end=end + timedelta(minutes=grace_out),
        )

    def _raise_for_missing_assignment(self, assignments: Sequence[ShiftAssignment], day: date) -> None:
        for status in (AssignmentStatus.PENDING, AssignmentStatus.CANCELLED, AssignmentStatus.EXPIRED):
            if any(a.status == status and a.covers(day) for a in assignments):
                raise ShiftWindowError(_ASSIGNMENT_MESSAGES[status], rule=f"ASSIGNMENT_{status.value}")
        raise ShiftWindowError("No shift assignment found for this date", rule="NO_ASSIGNMENT")

    def _approved_assignment(self, employee_id: int, day: date) -> Optional[ShiftAssignment]:
        return self._pick_approved(self._shifts.list_assignments_for_employee(employee_id), day)

    @staticmethod
    def _pick_approved(assignments: Sequence[ShiftAssignment], day: date) -> Optional[ShiftAssignment]:
        for a in assignments:
            if a.status == AssignmentStatus.APPROVED and a.covers(day):
                return a
        return None

    def _is_eligible_day(self, assignment: ShiftAssignment, day: date) -> bool:
        if not assignment.schedule_rule_id:
            return True
        rule = self._shifts.get_schedule_rule(assignment.schedule_rule_id)
        if not rule or not rule.active:
            # Unknown rule: do not block the punch.
            return True
        pattern = (rule.pattern or "").strip().upper()
        if not pattern.startswith("WEEKLY:"):
            return True
        allowed = {p.strip()[:3] for p in pattern.split(":", 1)[1].split(",") if p.strip()}
        if not allowed:
            return True
        return _WEEKDAYS[day.weekday()] in allowed

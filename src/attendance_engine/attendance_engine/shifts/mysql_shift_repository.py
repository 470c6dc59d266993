from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Sequence

from ..common.datetime_utils import normalize_time
from ..core.enums import AssignmentStatus, PunchPolicy
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import LatenessRule, ScheduleRule, Shift, ShiftAssignment
from .repository import HolidayCalendar, ShiftRepository


def _safe_time(value: Any):
    try:
        return normalize_time(value)
    except (TypeError, ValueError):
        # Left raw so the resolver reports it as malformed.
        return value


def _row_to_shift(r: Dict[str, Any]) -> Shift:
    grace_in = r.get("grace_in_minutes")
    return Shift(
        shift_id=int(r["shift_id"]),
        shift_name=r["shift_name"],
        start_time=_safe_time(r.get("start_time")),
        end_time=_safe_time(r.get("end_time")),
        grace_in_minutes=int(grace_in) if grace_in is not None else None,
        grace_out_minutes=int(r.get("grace_out_minutes") or 0),
        punch_policy=PunchPolicy(r.get("punch_policy") or PunchPolicy.FIRST_LAST.value),
        requires_overtime_approval=bool(r.get("requires_overtime_approval")),
    )


def _row_to_assignment(r: Dict[str, Any]) -> ShiftAssignment:
    rule_id = r.get("schedule_rule_id")
    return ShiftAssignment(
        assignment_id=int(r["assignment_id"]),
        employee_id=int(r["employee_id"]),
        shift_id=int(r["shift_id"]),
        status=AssignmentStatus(r["status"]),
        start_date=r["start_date"],
        end_date=r.get("end_date"),
        schedule_rule_id=int(rule_id) if rule_id is not None else None,
    )


class MySQLShiftRepository(ShiftRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, shift_id: int) -> Optional[Shift]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT shift_id, shift_name, start_time, end_time, grace_in_minutes,
                       grace_out_minutes, punch_policy, requires_overtime_approval
                FROM shifts
                WHERE shift_id=%s
                """,
                (int(shift_id),),
            )
            r = fetchone(cur)
            return _row_to_shift(r) if r else None

    def list_assignments_for_employee(self, employee_id: int) -> Sequence[ShiftAssignment]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT assignment_id, employee_id, shift_id, status, start_date, end_date, schedule_rule_id
                FROM shift_assignments
                WHERE employee_id=%s
                ORDER BY start_date DESC, assignment_id DESC
                """,
                (int(employee_id),),
            )
            return [_row_to_assignment(r) for r in fetchall(cur)]

    def list_assignments_ending_between(self, start: date, end: date) -> Sequence[ShiftAssignment]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT assignment_id, employee_id, shift_id, status, start_date, end_date, schedule_rule_id
                FROM shift_assignments
                WHERE status=%s AND end_date BETWEEN %s AND %s
                ORDER BY end_date, assignment_id
                """,
                (AssignmentStatus.APPROVED.value, start, end),
            )
            return [_row_to_assignment(r) for r in fetchall(cur)]

    def get_schedule_rule(self, rule_id: int) -> Optional[ScheduleRule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT rule_id, name, pattern, active FROM schedule_rules WHERE rule_id=%s",
                (int(rule_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return ScheduleRule(
                rule_id=int(r["rule_id"]),
                name=r["name"],
                pattern=r.get("pattern") or "",
                active=bool(r.get("active")),
            )

    def get_active_lateness_rule(self, name: Optional[str] = None) -> Optional[LatenessRule]:
        clauses = ["active=1"]
        params: list[object] = []
        if name:
            clauses.append("name=%s")
            params.append(name)
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT rule_id, name, grace_period_minutes, window_days, threshold, active
                FROM lateness_rules
                WHERE {where}
                ORDER BY rule_id DESC
                LIMIT 1
                """,
                tuple(params),
            )
            r = fetchone(cur)
            if not r:
                return None
            return LatenessRule(
                rule_id=int(r["rule_id"]),
                name=r["name"],
                grace_period_minutes=int(r.get("grace_period_minutes") or 0),
                window_days=int(r["window_days"]) if r.get("window_days") is not None else None,
                threshold=int(r["threshold"]) if r.get("threshold") is not None else None,
                active=bool(r.get("active")),
            )

    def has_active_overtime_approval(self) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM overtime_rules WHERE active=1 AND approved=1")
            r = fetchone(cur)
            return bool(r and int(r["n"]) > 0)


class MySQLHolidayCalendar(HolidayCalendar):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def is_holiday(self, day: date) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS n
                FROM holidays
                WHERE active=1 AND start_date<=%s AND COALESCE(end_date, start_date)>=%s
                """,
                (day, day),
            )
            r = fetchone(cur)
            return bool(r and int(r["n"]) > 0)

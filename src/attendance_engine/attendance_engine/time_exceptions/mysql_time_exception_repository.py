from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import TimeExceptionStatus, TimeExceptionType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import BreakPermission, TimeException
from .repository import TimeExceptionRepository

_COLUMNS = """
    exception_id, employee_id, attendance_record_id, exception_type, status, reason,
    assigned_to, minutes, break_start, break_end, duration_minutes,
    created_at, updated_at, escalated_at
"""


def _row_to_exception(r: Dict[str, Any]) -> TimeException:
    common = dict(
        exception_id=int(r["exception_id"]),
        employee_id=int(r["employee_id"]),
        attendance_record_id=int(r["attendance_record_id"]) if r.get("attendance_record_id") is not None else None,
        type=TimeExceptionType(r["exception_type"]),
        status=TimeExceptionStatus(r["status"]),
        reason=r.get("reason") or "",
        created_at=r["created_at"],
        assigned_to=int(r["assigned_to"]) if r.get("assigned_to") is not None else None,
        minutes=int(r["minutes"]) if r.get("minutes") is not None else None,
        updated_at=r.get("updated_at"),
        escalated_at=r.get("escalated_at"),
    )
    if common["type"] == TimeExceptionType.BREAK_PERMISSION:
        return BreakPermission(
            **common,
            start_time=r.get("break_start"),
            end_time=r.get("break_end"),
            duration_minutes=int(r.get("duration_minutes") or 0),
        )
    return TimeException(**common)


def _break_fields(e: TimeException):
    if isinstance(e, BreakPermission):
        return e.start_time, e.end_time, int(e.duration_minutes)
    return None, None, None


class MySQLTimeExceptionRepository(TimeExceptionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add(self, exception: TimeException) -> TimeException:
        start, end, duration = _break_fields(exception)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO time_exceptions(employee_id, attendance_record_id, exception_type, status, reason,
                                            assigned_to, minutes, break_start, break_end, duration_minutes,
                                            created_at, updated_at, escalated_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    exception.employee_id,
                    exception.attendance_record_id,
                    exception.type.value,
                    exception.status.value,
                    exception.reason,
                    exception.assigned_to,
                    exception.minutes,
                    start,
                    end,
                    duration,
                    exception.created_at,
                    exception.updated_at,
                    exception.escalated_at,
                ),
            )
            return replace(exception, exception_id=int(cur.lastrowid))

    def get(self, exception_id: int) -> Optional[TimeException]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM time_exceptions WHERE exception_id=%s", (int(exception_id),))
            r = fetchone(cur)
            return _row_to_exception(r) if r else None

    def update(self, exception: TimeException) -> TimeException:
        start, end, duration = _break_fields(exception)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE time_exceptions
                SET status=%s, reason=%s, assigned_to=%s, minutes=%s, break_start=%s, break_end=%s,
                    duration_minutes=%s, updated_at=%s, escalated_at=%s
                WHERE exception_id=%s
                """,
                (
                    exception.status.value,
                    exception.reason,
                    exception.assigned_to,
                    exception.minutes,
                    start,
                    end,
                    duration,
                    exception.updated_at,
                    exception.escalated_at,
                    int(exception.exception_id),
                ),
            )
        return exception

    def delete(self, exception_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM time_exceptions WHERE exception_id=%s", (int(exception_id),))
            return cur.rowcount > 0

    def list_for_record(self, record_id: int) -> Sequence[TimeException]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM time_exceptions
                WHERE attendance_record_id=%s
                ORDER BY exception_id
                """,
                (int(record_id),),
            )
            return [_row_to_exception(r) for r in fetchall(cur)]

    def list(
        self,
        *,
        employee_id: Optional[int] = None,
        type: Optional[TimeExceptionType] = None,
        statuses: Optional[Sequence[TimeExceptionStatus]] = None,
        assigned_to: Optional[int] = None,
        created_since: Optional[datetime] = None,
    ) -> Sequence[TimeException]:
        clauses = ["1=1"]
        params: list[object] = []

        if employee_id is not None:
            clauses.append("employee_id=%s")
            params.append(int(employee_id))
        if type is not None:
            clauses.append("exception_type=%s")
            params.append(type.value)
        if statuses:
            clauses.append("status IN (" + ",".join(["%s"] * len(statuses)) + ")")
            params.extend(s.value for s in statuses)
        if assigned_to is not None:
            clauses.append("assigned_to=%s")
            params.append(int(assigned_to))
        if created_since is not None:
            clauses.append("created_at>=%s")
            params.append(created_since)

        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM time_exceptions
                WHERE {where}
                ORDER BY created_at, exception_id
                """,
                tuple(params),
            )
            return [_row_to_exception(r) for r in fetchall(cur)]

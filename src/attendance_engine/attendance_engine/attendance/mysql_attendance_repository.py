from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.enums import PunchType
from ..core.exceptions import ConcurrencyError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AttendanceRecord, Punch, PunchSequence
from .repository import AttendanceRepository

_RECORD_COLUMNS = """
    record_id, employee_id, work_date, total_work_minutes, has_missed_punch,
    finalised_for_payroll, version
"""


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _hydrate(self, cur, rows: List[Dict[str, Any]]) -> List[AttendanceRecord]:
        if not rows:
            return []
        ids = [int(r["record_id"]) for r in rows]
        marks = ",".join(["%s"] * len(ids))

        cur.execute(
            f"""
            SELECT record_id, punch_type, punch_time, source
            FROM attendance_punches
            WHERE record_id IN ({marks})
            ORDER BY punch_time, punch_id
            """,
            tuple(ids),
        )
        punches: Dict[int, List[Punch]] = {i: [] for i in ids}
        for p in fetchall(cur):
            punches[int(p["record_id"])].append(
                Punch(type=PunchType(p["punch_type"]), time=p["punch_time"], source=p.get("source"))
            )

        cur.execute(
            f"SELECT record_id, exception_id FROM attendance_exception_links WHERE record_id IN ({marks}) ORDER BY link_id",
            tuple(ids),
        )
        exception_ids: Dict[int, List[int]] = {i: [] for i in ids}
        for link in fetchall(cur):
            exception_ids[int(link["record_id"])].append(int(link["exception_id"]))

        cur.execute(
            f"SELECT record_id, request_id FROM attendance_correction_links WHERE record_id IN ({marks}) ORDER BY link_id",
            tuple(ids),
        )
        correction_ids: Dict[int, List[int]] = {i: [] for i in ids}
        for link in fetchall(cur):
            correction_ids[int(link["record_id"])].append(int(link["request_id"]))

        return [
            AttendanceRecord(
                record_id=int(r["record_id"]),
                employee_id=int(r["employee_id"]),
                work_date=r["work_date"],
                punches=PunchSequence(punches[int(r["record_id"])]),
                total_work_minutes=int(r.get("total_work_minutes") or 0),
                has_missed_punch=bool(r.get("has_missed_punch")),
                finalised_for_payroll=bool(r.get("finalised_for_payroll")),
                exception_ids=exception_ids[int(r["record_id"])],
                correction_ids=correction_ids[int(r["record_id"])],
                version=int(r.get("version") or 0),
            )
            for r in rows
        ]

    def get_by_id(self, record_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE record_id=%s",
                (int(record_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return self._hydrate(cur, [r])[0]

    def get_for_employee_and_date(self, employee_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE employee_id=%s AND work_date=%s",
                (int(employee_id), work_date),
            )
            r = fetchone(cur)
            if not r:
                return None
            return self._hydrate(cur, [r])[0]

    def create(self, *, employee_id: int, work_date: date, punches: Iterable[Punch] = ()) -> AttendanceRecord:
        sequence = PunchSequence(punches)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_records(employee_id, work_date, total_work_minutes,
                                               has_missed_punch, finalised_for_payroll, version)
                VALUES(%s,%s,0,0,0,0)
                """,
                (int(employee_id), work_date),
            )
            record_id = int(cur.lastrowid)
            self._write_punches(cur, record_id, sequence)
        return AttendanceRecord(
            record_id=record_id,
            employee_id=int(employee_id),
            work_date=work_date,
            punches=sequence,
        )

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET total_work_minutes=%s, has_missed_punch=%s, finalised_for_payroll=%s, version=version+1
                WHERE record_id=%s AND version=%s
                """,
                (
                    int(record.total_work_minutes),
                    int(record.has_missed_punch),
                    int(record.finalised_for_payroll),
                    int(record.record_id),
                    int(record.version),
                ),
            )
            if cur.rowcount == 0:
                raise ConcurrencyError(
                    f"Attendance record {record.record_id} was modified concurrently, reload and retry"
                )

            cur.execute("DELETE FROM attendance_punches WHERE record_id=%s", (int(record.record_id),))
            self._write_punches(cur, record.record_id, record.punches)

            cur.execute("DELETE FROM attendance_exception_links WHERE record_id=%s", (int(record.record_id),))
            for exception_id in record.exception_ids:
                cur.execute(
                    "INSERT INTO attendance_exception_links(record_id, exception_id) VALUES(%s,%s)",
                    (int(record.record_id), int(exception_id)),
                )

            cur.execute("DELETE FROM attendance_correction_links WHERE record_id=%s", (int(record.record_id),))
            for request_id in record.correction_ids:
                cur.execute(
                    "INSERT INTO attendance_correction_links(record_id, request_id) VALUES(%s,%s)",
                    (int(record.record_id), int(request_id)),
                )

        record.version += 1
        return record

    @staticmethod
    def _write_punches(cur, record_id: int, punches: PunchSequence) -> None:
        for p in punches:
            cur.execute(
                """
                INSERT INTO attendance_punches(record_id, punch_type, punch_time, source)
                VALUES(%s,%s,%s,%s)
                """,
                (int(record_id), p.type.value, p.time, p.source),
            )

    def list_for_employee(self, employee_id: int, *, start_date: date, end_date: date) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE employee_id=%s AND work_date BETWEEN %s AND %s
                ORDER BY work_date
                """,
                (int(employee_id), start_date, end_date),
            )
            return self._hydrate(cur, fetchall(cur))

    def list_between(self, *, start_date: date, end_date: date) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE work_date BETWEEN %s AND %s
                ORDER BY work_date, employee_id
                """,
                (start_date, end_date),
            )
            return self._hydrate(cur, fetchall(cur))

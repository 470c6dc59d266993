from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..core.enums import AdHocKind, CorrectionKind, CorrectionStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AdHocRequest, CorrectionDetail, CorrectionRequest
from .repository import CorrectionRepository

_COLUMNS = """
    request_id, employee_id, attendance_record_id, status, reason, correction_kind, corrected_at, recorded_at,
    is_redundant, reviewer_id, review_note, reviewed_at, escalated_at, created_at
"""

_ADHOC_COLUMNS = """
    request_id, employee_id, request_kind, reason, status, created_at, deadline,
    attendance_record_id, escalated_at
"""


def _row_to_request(r: Dict[str, Any]) -> CorrectionRequest:
    return CorrectionRequest(
        request_id=int(r["request_id"]),
        employee_id=int(r["employee_id"]),
        attendance_record_id=int(r["attendance_record_id"]),
        status=CorrectionStatus(r["status"]),
        reason=r.get("reason") or "",
        detail=CorrectionDetail(
            kind=CorrectionKind(r["correction_kind"]),
            corrected_at=r["corrected_at"],
            recorded_at=r.get("recorded_at"),
        ),
        created_at=r["created_at"],
        is_redundant=bool(r.get("is_redundant")),
        reviewer_id=int(r["reviewer_id"]) if r.get("reviewer_id") is not None else None,
        review_note=r.get("review_note"),
        reviewed_at=r.get("reviewed_at"),
        escalated_at=r.get("escalated_at"),
    )


def _row_to_adhoc(r: Dict[str, Any]) -> AdHocRequest:
    return AdHocRequest(
        request_id=int(r["request_id"]),
        employee_id=int(r["employee_id"]),
        kind=AdHocKind(r["request_kind"]),
        reason=r.get("reason") or "",
        status=CorrectionStatus(r["status"]),
        created_at=r["created_at"],
        deadline=r.get("deadline"),
        attendance_record_id=int(r["attendance_record_id"]) if r.get("attendance_record_id") is not None else None,
        escalated_at=r.get("escalated_at"),
    )


class MySQLCorrectionRepository(CorrectionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add(self, request: CorrectionRequest) -> CorrectionRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO correction_requests(employee_id, attendance_record_id, status, reason, correction_kind,
                                                corrected_at, recorded_at, is_redundant, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(request.employee_id),
                    int(request.attendance_record_id),
                    request.status.value,
                    request.reason,
                    request.detail.kind.value,
                    request.detail.corrected_at,
                    request.detail.recorded_at,
                    int(request.is_redundant),
                    request.created_at,
                ),
            )
            return replace(request, request_id=int(cur.lastrowid))

    def get(self, request_id: int) -> Optional[CorrectionRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM correction_requests WHERE request_id=%s", (int(request_id),))
            r = fetchone(cur)
            return _row_to_request(r) if r else None

    def update(self, request: CorrectionRequest) -> CorrectionRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE correction_requests
                SET status=%s, reviewer_id=%s, review_note=%s, reviewed_at=%s, escalated_at=%s
                WHERE request_id=%s
                """,
                (
                    request.status.value,
                    request.reviewer_id,
                    request.review_note,
                    request.reviewed_at,
                    request.escalated_at,
                    int(request.request_id),
                ),
            )
        return request

    def list_for_record(self, record_id: int) -> Sequence[CorrectionRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM correction_requests WHERE attendance_record_id=%s ORDER BY request_id",
                (int(record_id),),
            )
            return [_row_to_request(r) for r in fetchall(cur)]

    def list(
        self,
        *,
        employee_id: Optional[int] = None,
        statuses: Optional[Sequence[CorrectionStatus]] = None,
        created_before: Optional[datetime] = None,
    ) -> Sequence[CorrectionRequest]:
        clauses = ["1=1"]
        params: list[object] = []
        if employee_id is not None:
            clauses.append("employee_id=%s")
            params.append(int(employee_id))
        if statuses:
            clauses.append("status IN (" + ",".join(["%s"] * len(statuses)) + ")")
            params.extend(s.value for s in statuses)
        if created_before is not None:
            clauses.append("created_at<=%s")
            params.append(created_before)
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM correction_requests WHERE {where} ORDER BY created_at DESC, request_id DESC",
                tuple(params),
            )
            return [_row_to_request(r) for r in fetchall(cur)]

    def add_adhoc(self, request: AdHocRequest) -> AdHocRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO adhoc_requests(employee_id, request_kind, reason, status, created_at, deadline,
                                           attendance_record_id)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(request.employee_id),
                    request.kind.value,
                    request.reason,
                    request.status.value,
                    request.created_at,
                    request.deadline,
                    request.attendance_record_id,
                ),
            )
            return replace(request, request_id=int(cur.lastrowid))

    def update_adhoc(self, request: AdHocRequest) -> AdHocRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE adhoc_requests SET status=%s, escalated_at=%s WHERE request_id=%s",
                (request.status.value, request.escalated_at, int(request.request_id)),
            )
        return request

    def list_adhoc(
        self,
        *,
        employee_id: Optional[int] = None,
        deadline_before: Optional[datetime] = None,
    ) -> Sequence[AdHocRequest]:
        clauses = ["1=1"]
        params: list[object] = []
        if employee_id is not None:
            clauses.append("employee_id=%s")
            params.append(int(employee_id))
        if deadline_before is not None:
            clauses.append("deadline IS NOT NULL AND deadline<%s")
            params.append(deadline_before)
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_ADHOC_COLUMNS} FROM adhoc_requests WHERE {where} ORDER BY request_id",
                tuple(params),
            )
            return [_row_to_adhoc(r) for r in fetchall(cur)]

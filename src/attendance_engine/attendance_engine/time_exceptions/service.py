from __future__ import annotations

import csv
import io
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..attendance.model import AttendanceRecord
from ..attendance.recompute import RecomputeEngine, compute_total_minutes, record_lock_key
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_local
from ..common.validators import require_id, require_non_empty
from ..core.enums import TimeExceptionStatus, TimeExceptionType
from ..core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from .ledger import ExceptionLedger
from .model import TimeException, approved_break_minutes
from .repository import TimeExceptionRepository
from .transitions import ensure_transition

logger = logging.getLogger(__name__)

_EXPORT_COLUMNS = (
    "exception_id",
    "employee_id",
    "attendance_record_id",
    "type",
    "status",
    "assigned_to",
    "minutes",
    "reason",
    "created_at",
    "updated_at",
)


class TimeExceptionService:
    def __init__(
        self,
        exceptions: TimeExceptionRepository,
        attendance: AttendanceRepository,
        engine: RecomputeEngine,
        ledger: ExceptionLedger,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = now_local,
    ):
        self._exceptions = exceptions
        self._attendance = attendance
        self._engine = engine
        self._ledger = ledger
        self._notifier = notifier
        self._clock = clock

    def _get(self, exception_id: int) -> TimeException:
        exception = self._exceptions.get(require_id(exception_id, "Time exception id"))
        if not exception:
            raise NotFoundError(f"Time exception {exception_id} not found")
        return exception

    def create(
        self,
        *,
        employee_id: int,
        attendance_record_id: int,
        type: TimeExceptionType,
        reason: str,
        assigned_to: Optional[int] = None,
    ) -> TimeException:
        """Manually raise an exception against a record."""

        if type == TimeExceptionType.BREAK_PERMISSION:
            raise ValidationError("Break permissions must be requested through the break permission workflow")
        reason = require_non_empty(reason, "Reason")
        employee_id = require_id(employee_id, "Employee id")

        record = self._attendance.get_by_id(require_id(attendance_record_id, "Attendance record id"))
        if not record:
            raise NotFoundError(f"Attendance record {attendance_record_id} not found")
        if record.employee_id != employee_id:
            raise ValidationError("Attendance record does not belong to this employee")

        with self._engine.locks.hold(record_lock_key(record)):
            record = self._attendance.get_by_id(record.record_id)
            exception = self._ledger.open(record, type, reason, assigned_to=assigned_to)
            record.finalised_for_payroll = False
            self._attendance.save(record)
        return exception

    def get(self, exception_id: int) -> TimeException:
        return self._get(exception_id)

    def list(
        self,
        *,
        employee_id: Optional[int] = None,
        type: Optional[TimeExceptionType] = None,
        status: Optional[TimeExceptionStatus] = None,
        assigned_to: Optional[int] = None,
    ) -> Sequence[TimeException]:
        return self._exceptions.list(
            employee_id=employee_id,
            type=type,
            statuses=[status] if status else None,
            assigned_to=assigned_to,
        )

    def assign(self, exception_id: int, assignee_id: int) -> TimeException:
        exception = self._get(exception_id)
        assignee_id = require_id(assignee_id, "Assignee id")
        # Re-assigning a PENDING exception only changes the handler.
        if exception.status not in {TimeExceptionStatus.OPEN, TimeExceptionStatus.PENDING}:
            raise InvalidTransitionError(f"Cannot assign a time exception in status {exception.status.value}")
        updated = self._exceptions.update(
            replace(exception, status=TimeExceptionStatus.PENDING, assigned_to=assignee_id, updated_at=self._clock())
        )
        logger.info("Assigned time exception %s to %s", exception.exception_id, assignee_id)
        return updated

    def update_status(self, exception_id: int, status: TimeExceptionStatus, *, reason: Optional[str] = None) -> Optional[TimeException]:
        """Apply one transition; returns None when resolution deleted the exception."""

        exception = self._get(exception_id)
        ensure_transition(exception.status, status)

        changes = {"status": status, "updated_at": self._clock()}
        if reason:
            changes["reason"] = reason.strip()
        if status == TimeExceptionStatus.ESCALATED:
            changes["escalated_at"] = self._clock()
        updated = self._exceptions.update(replace(exception, **changes))
        logger.info(
            "Time exception %s moved %s -> %s", exception.exception_id, exception.status.value, status.value
        )

        if status == TimeExceptionStatus.RESOLVED:
            return self._on_resolved(updated)
        return updated

    def _on_resolved(self, exception: TimeException) -> Optional[TimeException]:
        if exception.attendance_record_id is None:
            return exception
        record = self._attendance.get_by_id(exception.attendance_record_id)
        if record is None:
            return exception

        with self._engine.locks.hold(record_lock_key(record)):
            record = self._attendance.get_by_id(record.record_id)
            if exception.type == TimeExceptionType.SHORT_TIME:
                if self._short_time_satisfied(record):
                    self._ledger.discard(record, exception)
                    self._notifier.retract(
                        NotificationType.SHORT_TIME,
                        recipient_id=record.employee_id,
                        reference=f"record:{record.record_id}",
                    )
                    self._attendance.save(record)
                    return None
                return exception

            others = [
                e
                for e in self._exceptions.list_for_record(record.record_id)
                if e.exception_id != exception.exception_id and e.is_unresolved
            ]
            if not others:
                self._engine.refresh_finalisation(record)
                self._attendance.save(record)
        return exception

    def _short_time_satisfied(self, record: AttendanceRecord) -> bool:
        scheduled = self._engine.get_scheduled_minutes(record)
        breaks = approved_break_minutes(self._exceptions.list_for_record(record.record_id))
        worked = max(0, compute_total_minutes(record.punches) - breaks)
        return scheduled - breaks - worked <= 0

    def export_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(_EXPORT_COLUMNS)
        for e in self._exceptions.list():
            writer.writerow(
                [
                    e.exception_id,
                    e.employee_id,
                    e.attendance_record_id or "",
                    e.type.value,
                    e.status.value,
                    e.assigned_to or "",
                    "" if e.minutes is None else e.minutes,
                    e.reason,
                    e.created_at.isoformat(sep=" ") if e.created_at else "",
                    e.updated_at.isoformat(sep=" ") if e.updated_at else "",
                ]
            )
        return buf.getvalue()

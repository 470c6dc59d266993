from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence, Union

from ..attendance.recompute import RecomputeEngine, record_lock_key
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import ceil_minutes, now_local, parse_punch_timestamp
from ..common.validators import require_id, require_non_empty
from ..core.enums import TimeExceptionStatus, TimeExceptionType
from ..core.exceptions import NotFoundError, ValidationError
from ..core.settings import EngineSettings
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from ..time_exceptions.ledger import ExceptionLedger
from ..time_exceptions.model import BreakPermission, approved_break_minutes
from ..time_exceptions.repository import TimeExceptionRepository
from ..time_exceptions.transitions import ensure_transition

logger = logging.getLogger(__name__)

TimeInput = Union[datetime, str]


def _as_datetime(value: TimeInput, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return parse_punch_timestamp(str(value))


class BreakPermissionService:
    def __init__(
        self,
        exceptions: TimeExceptionRepository,
        attendance: AttendanceRepository,
        engine: RecomputeEngine,
        ledger: ExceptionLedger,
        notifier: Notifier,
        settings: EngineSettings,
        *,
        clock: Callable[[], datetime] = now_local,
    ):
        self._exceptions = exceptions
        self._attendance = attendance
        self._engine = engine
        self._ledger = ledger
        self._notifier = notifier
        self._max_minutes = int(settings.break_max_minutes)
        self._clock = clock

    def get_max_minutes(self) -> int:
        return self._max_minutes

    def set_max_minutes(self, minutes: int) -> int:
        try:
            value = int(minutes)
        except (TypeError, ValueError):
            raise ValidationError("Maximum break duration must be a whole number of minutes")
        if value <= 0:
            raise ValidationError("Maximum break duration must be greater than 0")
        logger.info("Break permission maximum changed from %s to %s minutes", self._max_minutes, value)
        self._max_minutes = value
        return value

    def create(
        self,
        *,
        employee_id: int,
        attendance_record_id: int,
        start_time: TimeInput,
        end_time: TimeInput,
        reason: str,
    ) -> BreakPermission:
        employee_id = require_id(employee_id, "Employee id")
        reason = require_non_empty(reason, "Reason")
        start = _as_datetime(start_time, "Start time")
        end = _as_datetime(end_time, "End time")
        if end <= start:
            raise ValidationError("Break end time must be after start time")

        duration = ceil_minutes(start, end)
        if duration > self._max_minutes:
            raise ValidationError(
                f"Break duration of {duration} minutes exceeds the maximum of {self._max_minutes} minutes"
            )

        record = self._attendance.get_by_id(require_id(attendance_record_id, "Attendance record id"))
        if not record:
            raise NotFoundError(f"Attendance record {attendance_record_id} not found")
        if record.employee_id != employee_id:
            raise ValidationError("Attendance record does not belong to this employee")

        with self._engine.locks.hold(record_lock_key(record)):
            record = self._attendance.get_by_id(record.record_id)
            permission = self._ledger.add(
                record,
                BreakPermission(
                    exception_id=0,
                    employee_id=employee_id,
                    attendance_record_id=record.record_id,
                    type=TimeExceptionType.BREAK_PERMISSION,
                    status=TimeExceptionStatus.PENDING,
                    reason=reason,
                    created_at=self._clock(),
                    start_time=start,
                    end_time=end,
                    duration_minutes=duration,
                ),
            )
            record.finalised_for_payroll = False
            self._attendance.save(record)
        return permission

    def _get(self, permission_id: int) -> BreakPermission:
        exception = self._exceptions.get(require_id(permission_id, "Break permission id"))
        if not isinstance(exception, BreakPermission):
            raise NotFoundError(f"Break permission {permission_id} not found")
        return exception

    def approve(self, permission_id: int, *, reviewer_id: Optional[int] = None) -> BreakPermission:
        return self._decide(permission_id, TimeExceptionStatus.APPROVED, reviewer_id)

    def reject(self, permission_id: int, *, reviewer_id: Optional[int] = None) -> BreakPermission:
        return self._decide(permission_id, TimeExceptionStatus.REJECTED, reviewer_id)

    def _decide(self, permission_id: int, status: TimeExceptionStatus, reviewer_id: Optional[int]) -> BreakPermission:
        permission = self._get(permission_id)
        ensure_transition(permission.status, status)

        record = self._attendance.get_by_id(permission.attendance_record_id) if permission.attendance_record_id else None
        updated = self._exceptions.update(
            replace(
                permission,
                status=status,
                assigned_to=reviewer_id if reviewer_id is not None else permission.assigned_to,
                updated_at=self._clock(),
            )
        )
        if record is not None and status == TimeExceptionStatus.APPROVED:
            # The next recompute pass applies the reduced net minutes.
            with self._engine.locks.hold(record_lock_key(record)):
                record = self._attendance.get_by_id(record.record_id)
                record.finalised_for_payroll = False
                self._attendance.save(record)

        approved = status == TimeExceptionStatus.APPROVED
        self._notifier.send(
            permission.employee_id,
            NotificationType.BREAK_PERMISSION_APPROVED if approved else NotificationType.BREAK_PERMISSION_REJECTED,
            f"Your break permission of {permission.duration_minutes} minutes was {'approved' if approved else 'rejected'}.",
            reference=f"exception:{permission.exception_id}",
        )
        logger.info("Break permission %s %s", permission.exception_id, status.value.lower())
        return updated

    def delete(self, employee_id: int, permission_id: int) -> None:
        permission = self._get(permission_id)
        if permission.employee_id != require_id(employee_id, "Employee id"):
            raise ValidationError("Break permission does not belong to this employee")
        if permission.status != TimeExceptionStatus.PENDING:
            raise ValidationError("Only pending break permissions can be deleted")

        record = self._attendance.get_by_id(permission.attendance_record_id) if permission.attendance_record_id else None
        if record is None:
            self._ledger.discard(None, permission)
            return
        with self._engine.locks.hold(record_lock_key(record)):
            record = self._attendance.get_by_id(record.record_id)
            self._ledger.discard(record, permission)
            self._attendance.save(record)

    def list_permissions(
        self,
        *,
        employee_id: Optional[int] = None,
        status: Optional[TimeExceptionStatus] = None,
    ) -> Sequence[BreakPermission]:
        items = self._exceptions.list(
            employee_id=employee_id,
            type=TimeExceptionType.BREAK_PERMISSION,
            statuses=[status] if status else None,
        )
        return [e for e in items if isinstance(e, BreakPermission)]

    def calculate_approved_break_minutes(self, record_id: int) -> int:
        return approved_break_minutes(self._exceptions.list_for_record(require_id(record_id, "Attendance record id")))

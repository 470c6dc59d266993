from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ..attendance.model import AttendanceRecord
from ..common.datetime_utils import now_local
from ..core.enums import TimeExceptionStatus, TimeExceptionType
from .model import TimeException
from .repository import TimeExceptionRepository
from .transitions import path_to

logger = logging.getLogger(__name__)


class ExceptionLedger:
    """Creates and deletes exceptions while keeping the record's id list in step.

    Callers own the record and persist it after the ledger call.
    """

    def __init__(self, exceptions: TimeExceptionRepository, *, clock: Callable[[], datetime] = now_local):
        self._exceptions = exceptions
        self._clock = clock

    def open(
        self,
        record: AttendanceRecord,
        type: TimeExceptionType,
        reason: str,
        *,
        minutes: Optional[int] = None,
        status: TimeExceptionStatus = TimeExceptionStatus.OPEN,
        assigned_to: Optional[int] = None,
    ) -> TimeException:
        exception = TimeException(
            exception_id=0,
            employee_id=record.employee_id,
            attendance_record_id=record.record_id,
            type=type,
            status=status,
            reason=reason,
            created_at=self._clock(),
            assigned_to=assigned_to,
            minutes=minutes,
        )
        return self.add(record, exception)

    def add(self, record: Optional[AttendanceRecord], exception: TimeException) -> TimeException:
        stored = self._exceptions.add(exception)
        if record is not None:
            record.link_exception(stored.exception_id)
        logger.info(
            "Created %s exception %s for employee %s (record %s)",
            stored.type.value, stored.exception_id, stored.employee_id, stored.attendance_record_id,
        )
        return stored

    def discard(self, record: Optional[AttendanceRecord], exception: TimeException) -> None:
        self._exceptions.delete(exception.exception_id)
        if record is not None:
            record.unlink_exception(exception.exception_id)
        logger.info(
            "Deleted %s exception %s (record %s)",
            exception.type.value, exception.exception_id, exception.attendance_record_id,
        )

    def attach(self, record: AttendanceRecord, exception: TimeException) -> None:
        record.link_exception(exception.exception_id)

    def move_to(self, exception: TimeException, target: TimeExceptionStatus, **changes) -> Optional[TimeException]:
        """Walk the transition table to ``target``; None when unreachable."""

        path = path_to(exception.status, target)
        if path is None:
            return None
        if not path and not changes:
            return exception
        updated = replace(exception, status=target, updated_at=self._clock(), **changes)
        return self._exceptions.update(updated)

    def reopen(self, record: AttendanceRecord, exception: TimeException, **changes) -> TimeException:
        """Put a detected anomaly back to OPEN because its condition came back.

        This is a system action outside the review transition table.
        """

        updated = self._exceptions.update(
            replace(exception, status=TimeExceptionStatus.OPEN, updated_at=self._clock(), **changes)
        )
        record.link_exception(updated.exception_id)
        if exception.status != TimeExceptionStatus.OPEN:
            logger.info(
                "Reopened %s exception %s (was %s)",
                exception.type.value, exception.exception_id, exception.status.value,
            )
        return updated

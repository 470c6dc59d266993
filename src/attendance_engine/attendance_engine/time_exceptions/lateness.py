from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_local
from ..common.locks import RecordLocks
from ..core.constants import REPEATED_LATENESS_MARKER
from ..core.enums import TimeExceptionStatus, TimeExceptionType
from ..core.settings import EngineSettings
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from ..shifts.repository import ShiftRepository
from .ledger import ExceptionLedger
from .model import TimeException
from .repository import TimeExceptionRepository

logger = logging.getLogger(__name__)

_COUNTED = (
    TimeExceptionStatus.OPEN,
    TimeExceptionStatus.PENDING,
    TimeExceptionStatus.APPROVED,
    TimeExceptionStatus.ESCALATED,
)


class RepeatedLatenessEscalator:
    """Escalates employees who are late too often within a rolling window."""

    def __init__(
        self,
        exceptions: TimeExceptionRepository,
        attendance: AttendanceRepository,
        shifts: ShiftRepository,
        ledger: ExceptionLedger,
        notifier: Notifier,
        settings: EngineSettings,
        *,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self._exceptions = exceptions
        self._attendance = attendance
        self._shifts = shifts
        self._ledger = ledger
        self._notifier = notifier
        self._settings = settings
        self._locks = locks or RecordLocks()
        self._clock = clock

    def thresholds(self, *, window_days: Optional[int] = None, threshold: Optional[int] = None) -> Tuple[int, int]:
        """Explicit arguments win, then the named lateness rule, then settings."""

        rule = self._shifts.get_active_lateness_rule(self._settings.repeated_lateness_rule_name)
        if window_days is None:
            window_days = (rule.window_days if rule and rule.window_days else None) or self._settings.lateness_window_days
        if threshold is None:
            threshold = (rule.threshold if rule and rule.threshold else None) or self._settings.lateness_threshold
        return int(window_days), int(threshold)

    def late_count(self, employee_id: int, *, only_unresolved: bool = True, window_days: Optional[int] = None) -> int:
        window_days, _ = self.thresholds(window_days=window_days)
        since = self._clock() - timedelta(days=window_days)
        statuses = list(_COUNTED) if only_unresolved else None
        return len(
            self._exceptions.list(
                employee_id=employee_id,
                type=TimeExceptionType.LATE,
                statuses=statuses,
                created_since=since,
            )
        )

    def evaluate(
        self,
        employee_id: int,
        *,
        window_days: Optional[int] = None,
        threshold: Optional[int] = None,
    ) -> Optional[TimeException]:
        """Return the new summary exception, or None when nothing was escalated."""

        window_days, threshold = self.thresholds(window_days=window_days, threshold=threshold)
        now = self._clock()
        since = now - timedelta(days=window_days)

        lates = list(
            self._exceptions.list(
                employee_id=employee_id,
                type=TimeExceptionType.LATE,
                statuses=list(_COUNTED),
                created_since=since,
            )
        )
        if len(lates) < threshold:
            return None
        if self._has_summary(employee_id):
            logger.debug("Repeated lateness for employee %s already escalated", employee_id)
            return None

        reviewer = self._settings.default_reviewer_id
        for late in lates:
            if late.status == TimeExceptionStatus.ESCALATED:
                continue
            moved = self._ledger.move_to(late, TimeExceptionStatus.ESCALATED, escalated_at=now)
            if moved is None:
                logger.info("LATE exception %s in status %s cannot be escalated", late.exception_id, late.status.value)

        summary = self._ledger.add(
            None,
            TimeException(
                exception_id=0,
                employee_id=employee_id,
                attendance_record_id=None,
                type=TimeExceptionType.MANUAL_ADJUSTMENT,
                status=TimeExceptionStatus.ESCALATED,
                reason=f"{REPEATED_LATENESS_MARKER}: {len(lates)} late arrivals in the last {window_days} days",
                created_at=now,
                assigned_to=reviewer,
                minutes=len(lates),
                escalated_at=now,
            ),
        )

        for record_id in sorted({l.attendance_record_id for l in lates if l.attendance_record_id is not None}):
            record = self._attendance.get_by_id(record_id)
            if record is None:
                continue
            with self._locks.hold((record.employee_id, record.work_date)):
                record = self._attendance.get_by_id(record_id)
                self._ledger.attach(record, summary)
                record.finalised_for_payroll = False
                self._attendance.save(record)

        recipients = self._settings.hr_reviewer_ids or ((reviewer,) if reviewer else ())
        for recipient in recipients:
            self._notifier.send(
                recipient,
                NotificationType.REPEATED_LATENESS,
                f"Employee {employee_id} was late {len(lates)} times in the last {window_days} days.",
                reference=f"exception:{summary.exception_id}",
            )
        logger.info("Escalated repeated lateness for employee %s (%s occurrences)", employee_id, len(lates))
        return summary

    def _has_summary(self, employee_id: int) -> bool:
        for e in self._exceptions.list(employee_id=employee_id, type=TimeExceptionType.MANUAL_ADJUSTMENT):
            if (e.reason or "").startswith(REPEATED_LATENESS_MARKER):
                return True
        return False

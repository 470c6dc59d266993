from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from ..common.datetime_utils import now_local
from ..common.locks import RecordLocks
from ..core.constants import ESCALATION_MARKER_SUFFIX
from ..core.enums import CorrectionStatus, TimeExceptionStatus
from ..core.settings import EngineSettings
from ..corrections.repository import CorrectionRepository
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from ..payroll.calendar import PayrollCalendar
from ..shifts.repository import ShiftRepository
from ..time_exceptions.repository import TimeExceptionRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    name: str
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    note: Optional[str] = None


class MaintenanceSweeps:
    """Time-triggered sweeps.

    Each entity is handled independently: an existing marker (status or
    notification log entry) makes a re-run a no-op, and a failure on one
    entity is logged without stopping the rest.
    """

    def __init__(
        self,
        corrections: CorrectionRepository,
        exceptions: TimeExceptionRepository,
        shifts: ShiftRepository,
        payroll: PayrollCalendar,
        notifier: Notifier,
        settings: EngineSettings,
        *,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self._corrections = corrections
        self._exceptions = exceptions
        self._shifts = shifts
        self._payroll = payroll
        self._notifier = notifier
        self._settings = settings
        self._locks = locks or RecordLocks()
        self._clock = clock

    def _reviewers(self, fallback: Optional[int] = None) -> List[int]:
        ids = list(self._settings.hr_reviewer_ids)
        if not ids and fallback:
            ids.append(int(fallback))
        if not ids and self._settings.system_user_id:
            ids.append(int(self._settings.system_user_id))
        return ids

    def escalate_stale_corrections(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport("stale_corrections")
        threshold = now - timedelta(days=self._settings.correction_escalation_days)
        stale = self._corrections.list(
            statuses=[CorrectionStatus.SUBMITTED, CorrectionStatus.IN_REVIEW],
            created_before=threshold,
        )
        for req in stale:
            try:
                current = self._corrections.get(req.request_id)
                if current is None or not current.status.is_open:
                    report.skipped += 1
                    continue
                self._corrections.update(replace(current, status=CorrectionStatus.ESCALATED, escalated_at=now))
                reference = f"correction:{current.request_id}"
                self._notifier.send(
                    current.employee_id,
                    NotificationType.CORRECTION_ESCALATED,
                    f"Your correction request #{current.request_id} was escalated after "
                    f"{self._settings.correction_escalation_days} days without a decision.",
                    reference=reference,
                )
                for reviewer in self._reviewers(current.reviewer_id):
                    self._notifier.send(
                        reviewer,
                        NotificationType.CORRECTION_ESCALATED,
                        f"Correction request #{current.request_id} is overdue for review.",
                        reference=reference,
                    )
                report.processed += 1
            except Exception:
                report.failed += 1
                logger.exception("Failed to escalate correction request %s", req.request_id)
        return report

    def escalate_overdue_adhoc_requests(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport("overdue_adhoc_requests")
        for req in self._corrections.list_adhoc(deadline_before=now):
            try:
                marker = f"{req.kind.value}{ESCALATION_MARKER_SUFFIX}"
                reference = f"adhoc:{req.request_id}"
                if req.status != CorrectionStatus.SUBMITTED or self._notifier.already_sent(marker, reference=reference):
                    report.skipped += 1
                    continue
                for reviewer in self._reviewers():
                    self._notifier.send(
                        reviewer,
                        marker,
                        f"{req.kind.value.title()} request #{req.request_id} from employee "
                        f"{req.employee_id} passed its deadline without a decision.",
                        reference=reference,
                    )
                self._corrections.update_adhoc(replace(req, status=CorrectionStatus.ESCALATED, escalated_at=now))
                report.processed += 1
            except Exception:
                report.failed += 1
                logger.exception("Failed to escalate %s request %s", req.kind.value, req.request_id)
        return report

    def escalate_exceptions_before_cutoff(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport("pre_cutoff_exceptions")
        cutoff = self._payroll.get_active_payroll_cutoff()
        if cutoff is None:
            report.note = "no active payroll period"
            return report

        days_left = (cutoff - now.date()).days
        if days_left < 0 or days_left > self._settings.exception_escalation_days_before_cutoff:
            report.note = f"cutoff {cutoff} not within escalation window"
            return report

        pending = self._exceptions.list(statuses=[TimeExceptionStatus.OPEN, TimeExceptionStatus.PENDING])
        for e in pending:
            try:
                reference = f"exception:{e.exception_id}"
                recipients = [e.assigned_to] if e.assigned_to else self._reviewers()
                sent = 0
                for recipient in recipients:
                    if self._notifier.already_sent(
                        NotificationType.TIME_EXCEPTION_ESCALATED, recipient_id=recipient, reference=reference
                    ):
                        continue
                    self._notifier.send(
                        recipient,
                        NotificationType.TIME_EXCEPTION_ESCALATED,
                        f"{e.type.value} exception #{e.exception_id} for employee {e.employee_id} "
                        f"is unresolved and payroll closes on {cutoff:%d/%m/%Y}.",
                        reference=reference,
                    )
                    sent += 1
                if e.escalated_at is None:
                    current = self._exceptions.get(e.exception_id)
                    if current is not None:
                        self._exceptions.update(replace(current, escalated_at=now))
                if sent:
                    report.processed += 1
                else:
                    report.skipped += 1
            except Exception:
                report.failed += 1
                logger.exception("Failed to escalate time exception %s", e.exception_id)
        return report

    def notify_expiring_shifts(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        report = SweepReport("shift_expiry")
        today = now.date()
        horizon = today + timedelta(days=self._settings.shift_expiry_notice_days)
        for assignment in self._shifts.list_assignments_ending_between(today, horizon):
            try:
                with self._locks.hold(("assignment", assignment.assignment_id)):
                    reference = f"assignment:{assignment.assignment_id}"
                    recipients = self._dedupe(self._reviewers() + [assignment.employee_id])
                    sent = 0
                    for recipient in recipients:
                        if self._notifier.already_sent(
                            NotificationType.SHIFT_EXPIRY, recipient_id=recipient, reference=reference
                        ):
                            continue
                        self._notifier.send(
                            recipient,
                            NotificationType.SHIFT_EXPIRY,
                            f"Shift assignment #{assignment.assignment_id} for employee "
                            f"{assignment.employee_id} ends on {assignment.end_date:%d/%m/%Y}.",
                            reference=reference,
                        )
                        sent += 1
                    if sent:
                        report.processed += 1
                    else:
                        report.skipped += 1
            except Exception:
                report.failed += 1
                logger.exception("Failed to notify expiry of shift assignment %s", assignment.assignment_id)
        return report

    @staticmethod
    def _dedupe(ids: Iterable[int]) -> List[int]:
        seen: List[int] = []
        for i in ids:
            if i not in seen:
                seen.append(i)
        return seen

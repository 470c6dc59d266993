from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from ..common.datetime_utils import ceil_minutes, minutes_between
from ..common.locks import RecordLocks
from ..core.enums import IssueSeverity, PunchType, TimeExceptionStatus, TimeExceptionType
from ..core.exceptions import NotFoundError
from ..corrections.repository import CorrectionRepository
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from ..shifts.model import Shift
from ..shifts.repository import ShiftRepository
from ..shifts.resolver import ShiftWindowResolver, shift_span
from ..time_exceptions.ledger import ExceptionLedger
from ..time_exceptions.model import TimeException, approved_break_minutes
from ..time_exceptions.repository import TimeExceptionRepository
from .model import AttendanceRecord, PunchSequence
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


def record_lock_key(record: AttendanceRecord) -> Tuple[int, date]:
    return (record.employee_id, record.work_date)


def compute_total_minutes(punches: PunchSequence) -> int:
    """Sum of each IN to the next OUT; a trailing IN adds nothing."""

    total = 0.0
    open_in: Optional[datetime] = None
    for p in punches:
        if p.type == PunchType.IN:
            if open_in is None:
                open_in = p.time
        elif open_in is not None:
            total += minutes_between(open_in, p.time)
            open_in = None
    return int(round(total))


def finalisation_eligible(record: AttendanceRecord, corrections: CorrectionRepository) -> bool:
    if not record.has_complete_pair:
        return False
    return not any(c.status.blocks_payroll for c in corrections.list_for_record(record.record_id))


@dataclass(frozen=True)
class RecomputeResult:
    record: AttendanceRecord
    total_work_minutes: int
    scheduled_minutes: int = 0
    approved_break_minutes: int = 0
    lateness_minutes: int = 0
    early_leave_minutes: int = 0
    overtime_minutes: int = 0
    short_time_minutes: int = 0
    non_working_day: bool = False
    late_exception_created: bool = False


@dataclass(frozen=True)
class RecordIssue:
    code: str
    severity: IssueSeverity
    message: str


@dataclass(frozen=True)
class RecordReview:
    record_id: int
    issues: List[RecordIssue] = field(default_factory=list)
    can_finalize: bool = False

    def has(self, code: str) -> bool:
        return any(i.code == code for i in self.issues)


class RecomputeEngine:
    def __init__(
        self,
        attendance: AttendanceRepository,
        exceptions: TimeExceptionRepository,
        corrections: CorrectionRepository,
        shifts: ShiftRepository,
        resolver: ShiftWindowResolver,
        ledger: ExceptionLedger,
        notifier: Notifier,
        *,
        locks: Optional[RecordLocks] = None,
        lateness_escalator=None,
    ):
        self._attendance = attendance
        self._exceptions = exceptions
        self._corrections = corrections
        self._shifts = shifts
        self._resolver = resolver
        self._ledger = ledger
        self._notifier = notifier
        self._locks = locks or RecordLocks()
        self._lateness = lateness_escalator

    @property
    def locks(self) -> RecordLocks:
        return self._locks

    def attach_lateness_escalator(self, escalator) -> None:
        self._lateness = escalator

    def _load(self, record_id: int) -> AttendanceRecord:
        record = self._attendance.get_by_id(int(record_id))
        if not record:
            raise NotFoundError(f"Attendance record {record_id} not found")
        return record

    # --- exposed to collaborators -------------------------------------------

    def recompute(
        self,
        record_id: int,
        *,
        suppress_late: bool = False,
        suppress_short_time: bool = False,
        escalate: bool = True,
    ) -> RecomputeResult:
        """Recalculate totals and exceptions for one record and persist it.

        Callers that hold a record lock pass ``escalate=False`` and call
        :meth:`escalate_lateness` after releasing it.
        """

        record = self._load(record_id)
        with self._locks.hold(record_lock_key(record)):
            record = self._load(record_id)
            result = self.recompute_loaded(record, suppress_late=suppress_late, suppress_short_time=suppress_short_time)
            self._attendance.save(record)

        if escalate:
            self.escalate_lateness(result)
        return result

    def escalate_lateness(self, result: Optional[RecomputeResult]) -> None:
        if result is None or not result.late_exception_created or self._lateness is None:
            return
        self._lateness.evaluate(result.record.employee_id)

    def get_scheduled_minutes(self, record: AttendanceRecord) -> int:
        effective = self._resolver.effective_shift(record.employee_id, record.work_date)
        if not effective:
            return 0
        shift, _ = effective
        return self._resolver.scheduled_minutes(shift, record.work_date)

    def refresh_finalisation(self, record: AttendanceRecord) -> bool:
        record.finalised_for_payroll = finalisation_eligible(record, self._corrections)
        return record.finalised_for_payroll

    # --- core pass ----------------------------------------------------------

    def recompute_loaded(
        self,
        record: AttendanceRecord,
        *,
        suppress_late: bool = False,
        suppress_short_time: bool = False,
    ) -> RecomputeResult:
        """Run one pass on an already-loaded record; the caller saves it."""

        late_created = False
        before: Sequence[TimeException] = list(self._exceptions.list_for_record(record.record_id))
        breaks = approved_break_minutes(before)
        day = record.work_date

        record.total_work_minutes = max(0, compute_total_minutes(record.punches) - breaks)

        non_working = self._resolver.is_non_working_day(record.employee_id, day)
        effective = self._resolver.effective_shift(record.employee_id, day)
        shift: Optional[Shift] = effective[0] if effective else None

        lateness = early_leave = overtime = 0
        if shift is not None:
            lateness, early_leave, overtime = self._measure(record, shift, non_working)

        # (1) missed punch
        missed = [e for e in before if e.type == TimeExceptionType.MISSED_PUNCH]
        if record.in_count > record.out_count:
            record.has_missed_punch = True
            if not non_working and not missed:
                self._ledger.open(
                    record,
                    TimeExceptionType.MISSED_PUNCH,
                    f"Missing OUT punch on {day:%d/%m/%Y}",
                )
                record.finalised_for_payroll = False
                self._notifier.send(
                    record.employee_id,
                    NotificationType.MISSED_PUNCH,
                    f"You have a missing punch on {day:%d/%m/%Y}. Please submit a correction request.",
                    reference=f"record:{record.record_id}",
                )
        else:
            record.has_missed_punch = False
            for e in missed:
                self._ledger.discard(record, e)

        # (2) lateness
        if lateness > 0 and not suppress_late:
            blocked = any(e.type == TimeExceptionType.LATE for e in before) or any(
                e.type == TimeExceptionType.MISSED_PUNCH and e.is_unresolved for e in before
            )
            if not blocked:
                self._ledger.open(
                    record,
                    TimeExceptionType.LATE,
                    f"Late arrival by {lateness} minutes on {day:%d/%m/%Y}",
                    minutes=lateness,
                )
                late_created = True

        # overtime approval
        if overtime > 0 and shift is not None and shift.requires_overtime_approval:
            has_request = any(e.type == TimeExceptionType.OVERTIME_REQUEST for e in before)
            if not has_request and not self._shifts.has_active_overtime_approval():
                self._ledger.open(
                    record,
                    TimeExceptionType.OVERTIME_REQUEST,
                    f"Overtime of {overtime} minutes requires approval",
                    minutes=overtime,
                )

        # (3) short time
        scheduled = 0
        short = 0
        if shift is not None and not non_working:
            scheduled = self._resolver.scheduled_minutes(shift, day)
            short = max(0, scheduled - breaks - record.total_work_minutes)
            short_open = self._reconcile_short_time(record, before, short, scheduled, suppress_short_time)
        else:
            short_open = False

        # (4) payroll gate; a standing shortfall keeps the record out of payroll
        self.refresh_finalisation(record)
        if short_open:
            record.finalised_for_payroll = False

        logger.debug(
            "Recomputed record %s: total=%s late=%s early=%s overtime=%s short=%s finalised=%s",
            record.record_id, record.total_work_minutes, lateness, early_leave, overtime, short,
            record.finalised_for_payroll,
        )
        return RecomputeResult(
            record=record,
            total_work_minutes=record.total_work_minutes,
            scheduled_minutes=scheduled,
            approved_break_minutes=breaks,
            lateness_minutes=lateness,
            early_leave_minutes=early_leave,
            overtime_minutes=overtime,
            short_time_minutes=short,
            non_working_day=non_working,
            late_exception_created=late_created,
        )

    def _measure(self, record: AttendanceRecord, shift: Shift, non_working: bool) -> Tuple[int, int, int]:
        start, end = shift_span(shift, record.work_date)
        first_in = record.punches.first_of(PunchType.IN)
        last_out = record.punches.last_of(PunchType.OUT)

        lateness = 0
        if first_in is not None and not non_working:
            allowed = start + timedelta(minutes=self._resolver.grace_in_minutes(shift))
            lateness = ceil_minutes(allowed, first_in.time)

        early_leave = overtime = 0
        if last_out is not None:
            earliest = end - timedelta(minutes=max(0, int(shift.grace_out_minutes or 0)))
            early_leave = ceil_minutes(last_out.time, earliest)
            overtime = ceil_minutes(end, last_out.time)
        return lateness, early_leave, overtime

    def _reconcile_short_time(
        self,
        record: AttendanceRecord,
        before: Sequence[TimeException],
        short: int,
        scheduled: int,
        suppress_creation: bool,
    ) -> bool:
        """Returns True when an OPEN short-time exception stands after the pass."""

        existing = [e for e in before if e.type == TimeExceptionType.SHORT_TIME]

        if short <= 0:
            for e in existing:
                self._ledger.discard(record, e)
            return False

        reason = f"Worked {record.total_work_minutes} of {scheduled} scheduled minutes ({short} short)"
        if existing:
            # Any status goes back to OPEN while the shortfall persists.
            for e in existing:
                if e.status != TimeExceptionStatus.OPEN or e.reason != reason or e.minutes != short:
                    self._ledger.reopen(record, e, reason=reason, minutes=short)
            return True

        # No new short-time while the shift is still open (trailing IN).
        if suppress_creation or record.in_count > record.out_count:
            return False
        self._ledger.open(record, TimeExceptionType.SHORT_TIME, reason, minutes=short)
        self._notifier.send(
            record.employee_id,
            NotificationType.SHORT_TIME,
            f"You worked {short} minutes less than scheduled on {record.work_date:%d/%m/%Y}.",
            reference=f"record:{record.record_id}",
        )
        return True

    # --- review -------------------------------------------------------------

    def review_record(self, record_id: int) -> RecordReview:
        record = self._load(record_id)
        issues: List[RecordIssue] = []

        if not record.punches:
            issues.append(RecordIssue("NO_PUNCH", IssueSeverity.HIGH, "No punches recorded"))
        else:
            expected = PunchType.IN
            for p in record.punches:
                if p.type != expected:
                    issues.append(
                        RecordIssue("INVALID_SEQUENCE", IssueSeverity.HIGH, "Punches do not alternate IN/OUT")
                    )
                    break
                expected = PunchType.OUT if expected == PunchType.IN else PunchType.IN
            if record.in_count != record.out_count:
                issues.append(
                    RecordIssue(
                        "MISSING_PUNCH",
                        IssueSeverity.HIGH,
                        f"{record.in_count} IN vs {record.out_count} OUT punches",
                    )
                )

        scheduled = self.get_scheduled_minutes(record)
        if scheduled and not self._resolver.is_non_working_day(record.employee_id, record.work_date):
            breaks = approved_break_minutes(self._exceptions.list_for_record(record.record_id))
            short = scheduled - breaks - record.total_work_minutes
            if short > 0:
                issues.append(RecordIssue("SHORT_TIME", IssueSeverity.MEDIUM, f"{short} minutes below schedule"))

        can_finalize = record.has_complete_pair and not any(i.severity == IssueSeverity.HIGH for i in issues)
        return RecordReview(record_id=record.record_id, issues=issues, can_finalize=can_finalize)

    def bulk_review(
        self,
        employee_id: int,
        start_date: date,
        end_date: date,
        *,
        issue: Optional[str] = None,
    ) -> List[RecordReview]:
        records = self._attendance.list_for_employee(employee_id, start_date=start_date, end_date=end_date)
        reviews = [self.review_record(r.record_id) for r in records]
        if issue:
            reviews = [r for r in reviews if r.has(issue.upper())]
        return reviews

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from ..attendance.model import AttendanceRecord, Punch
from ..attendance.recompute import RecomputeEngine, compute_total_minutes, record_lock_key
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_local, parse_correction_date, parse_correction_time, parse_punch_timestamp
from ..common.validators import require_enum, require_id, require_non_empty
from ..core.constants import CORRECTION_FUZZY_MATCH_MINUTES, REDUNDANT_CORRECTION_TOLERANCE_MINUTES
from ..core.enums import (
    AdHocKind,
    CorrectionKind,
    CorrectionStatus,
    PunchType,
    ReviewAction,
    TimeExceptionStatus,
    TimeExceptionType,
)
from ..core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ..notifications.model import NotificationType
from ..notifications.service import Notifier
from ..time_exceptions.ledger import ExceptionLedger
from ..time_exceptions.model import BreakPermission, approved_break_minutes
from ..time_exceptions.repository import TimeExceptionRepository
from .model import AdHocRequest, CorrectionDetail, CorrectionRequest
from .repository import CorrectionRepository

logger = logging.getLogger(__name__)

_REVIEWABLE = {CorrectionStatus.SUBMITTED, CorrectionStatus.IN_REVIEW, CorrectionStatus.ESCALATED}


@dataclass(frozen=True)
class CorrectionSubmission:
    """Validated correction input; formats are checked before any lookup."""

    employee_id: int
    attendance_record_id: int
    kind: CorrectionKind
    corrected_at: datetime
    reason: str

    @classmethod
    def parse(
        cls,
        *,
        employee_id,
        attendance_record_id,
        correction_type,
        corrected_punch_date: str,
        corrected_punch_local_time: str,
        reason: str,
    ) -> "CorrectionSubmission":
        employee_id = require_id(employee_id, "Employee id")
        record_id = require_id(attendance_record_id, "Attendance record id")
        kind = require_enum(CorrectionKind, correction_type, "Correction type")
        require_non_empty(corrected_punch_date, "Corrected punch date")
        require_non_empty(corrected_punch_local_time, "Corrected punch time")
        day = parse_correction_date(corrected_punch_date)
        at = parse_correction_time(corrected_punch_local_time)
        reason = require_non_empty(reason, "Reason")
        return cls(
            employee_id=employee_id,
            attendance_record_id=record_id,
            kind=kind,
            corrected_at=datetime.combine(day, at),
            reason=reason,
        )


def _within(a: datetime, b: datetime, minutes: int) -> bool:
    return abs((a - b).total_seconds()) <= minutes * 60


def apply_correction(record: AttendanceRecord, detail: CorrectionDetail) -> Punch:
    """Mutate the record's punches according to an approved correction."""

    punch_type = detail.kind.punch_type
    new_punch = Punch(type=punch_type, time=detail.corrected_at, source="CORRECTION")
    punches = record.punches

    if not detail.kind.is_incorrect:
        punches.add(new_punch)
        return new_punch

    same_type = [p for p in punches if p.type == punch_type]
    recorded = detail.recorded_at

    target = None
    if recorded is not None:
        target = next((p for p in same_type if p.time == recorded), None)
    if target is None and same_type:
        target = same_type[-1]
    if target is None and recorded is not None:
        near = [p for p in same_type if _within(p.time, recorded, CORRECTION_FUZZY_MATCH_MINUTES)]
        if near:
            target = min(near, key=lambda p: abs((p.time - recorded).total_seconds()))

    if target is None:
        punches.add(new_punch)
    elif target.time != detail.corrected_at:
        punches.replace(target, new_punch)
    return new_punch


class CorrectionService:
    def __init__(
        self,
        corrections: CorrectionRepository,
        attendance: AttendanceRepository,
        exceptions: TimeExceptionRepository,
        engine: RecomputeEngine,
        ledger: ExceptionLedger,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = now_local,
    ):
        self._corrections = corrections
        self._attendance = attendance
        self._exceptions = exceptions
        self._engine = engine
        self._ledger = ledger
        self._notifier = notifier
        self._clock = clock

    def _get(self, request_id: int) -> CorrectionRequest:
        req = self._corrections.get(require_id(request_id, "Correction request id"))
        if not req:
            raise NotFoundError(f"Correction request {request_id} not found")
        return req

    def _load_record(self, record_id: int) -> AttendanceRecord:
        record = self._attendance.get_by_id(record_id)
        if not record:
            raise NotFoundError(f"Attendance record {record_id} not found")
        return record

    # --- submission ---------------------------------------------------------

    def request(self, submission: CorrectionSubmission) -> CorrectionRequest:
        record = self._load_record(submission.attendance_record_id)
        if record.employee_id != submission.employee_id:
            raise ValidationError("Attendance record does not belong to this employee")

        with self._engine.locks.hold(record_lock_key(record)):
            record = self._load_record(record.record_id)
            if any(r.status.is_open for r in self._corrections.list_for_record(record.record_id)):
                raise ValidationError("An open correction request already exists for this attendance record")

            redundant = False
            current = None
            if submission.kind.is_incorrect:
                punch_type = submission.kind.punch_type
                current = record.punches.last_of(punch_type)
                if current is None:
                    raise ValidationError(
                        f"No {punch_type.value} punch is recorded for this day; "
                        f"submit a MISSING_PUNCH_{punch_type.value} request instead"
                    )
                redundant = _within(current.time, submission.corrected_at, REDUNDANT_CORRECTION_TOLERANCE_MINUTES)

            req = self._corrections.add(
                CorrectionRequest(
                    request_id=0,
                    employee_id=submission.employee_id,
                    attendance_record_id=record.record_id,
                    status=CorrectionStatus.SUBMITTED,
                    reason=submission.reason,
                    detail=CorrectionDetail(
                        kind=submission.kind,
                        corrected_at=submission.corrected_at,
                        recorded_at=current.time if current is not None else None,
                    ),
                    created_at=self._clock(),
                    is_redundant=redundant,
                )
            )
            record.link_correction(req.request_id)
            record.finalised_for_payroll = False
            self._attendance.save(record)

        logger.info(
            "Correction request %s (%s) submitted for record %s%s",
            req.request_id, submission.kind.value, record.record_id, " [redundant]" if redundant else "",
        )
        return req

    def submit(self, **fields) -> CorrectionRequest:
        """Parse raw submission fields and file the request."""

        return self.request(CorrectionSubmission.parse(**fields))

    def check_punch_exists(self, record_id: int, punch_type: PunchType, corrected_time: str) -> bool:
        record = self._load_record(require_id(record_id, "Attendance record id"))
        at = parse_punch_timestamp(corrected_time) if corrected_time else None
        if at is None:
            return False
        return any(
            p.type == punch_type and _within(p.time, at, REDUNDANT_CORRECTION_TOLERANCE_MINUTES)
            for p in record.punches
        )

    # --- review -------------------------------------------------------------

    def start_review(self, request_id: int, *, reviewer_id: int) -> CorrectionRequest:
        req = self._get(request_id)
        if req.status != CorrectionStatus.SUBMITTED:
            raise InvalidTransitionError(f"Cannot start review of a request in status {req.status.value}")
        updated = self._corrections.update(
            replace(req, status=CorrectionStatus.IN_REVIEW, reviewer_id=require_id(reviewer_id, "Reviewer id"))
        )
        self._notifier.send(
            req.employee_id,
            NotificationType.CORRECTION_IN_REVIEW,
            f"Your correction request #{req.request_id} is now in review.",
            reference=f"correction:{req.request_id}",
        )
        return updated

    def review(
        self,
        request_id: int,
        action: ReviewAction,
        *,
        reviewer_id: int,
        note: Optional[str] = None,
    ) -> CorrectionRequest:
        req = self._get(request_id)
        action = require_enum(ReviewAction, action, "Review action")
        reviewer_id = require_id(reviewer_id, "Reviewer id")
        if req.status not in _REVIEWABLE:
            raise InvalidTransitionError(f"Correction request {req.request_id} is already {req.status.value}")

        record = self._load_record(req.attendance_record_id)
        with self._engine.locks.hold(record_lock_key(record)):
            record = self._load_record(record.record_id)
            if action == ReviewAction.APPROVE:
                apply_correction(record, req.detail)
                status = CorrectionStatus.APPROVED
            else:
                status = CorrectionStatus.REJECTED

            updated = self._corrections.update(
                replace(
                    req,
                    status=status,
                    reviewer_id=reviewer_id,
                    review_note=(note or "").strip() or None,
                    reviewed_at=self._clock(),
                )
            )
            if action == ReviewAction.APPROVE:
                self._settle_record(record)
            else:
                self._engine.refresh_finalisation(record)
            self._attendance.save(record)

        approved = status == CorrectionStatus.APPROVED
        self._notifier.send(
            req.employee_id,
            NotificationType.CORRECTION_APPROVED if approved else NotificationType.CORRECTION_REJECTED,
            f"Your correction request #{req.request_id} was {'approved' if approved else 'rejected'}.",
            reference=f"correction:{req.request_id}",
        )
        logger.info("Correction request %s %s by %s", req.request_id, status.value.lower(), reviewer_id)
        return updated

    def _settle_record(self, record: AttendanceRecord) -> None:
        """Recalculate totals from punches and close what the correction fixed."""

        exceptions = list(self._exceptions.list_for_record(record.record_id))
        breaks = approved_break_minutes(exceptions)
        record.total_work_minutes = max(0, compute_total_minutes(record.punches) - breaks)
        record.has_missed_punch = record.in_count > record.out_count
        scheduled = self._engine.get_scheduled_minutes(record)

        for e in exceptions:
            if isinstance(e, BreakPermission) or not e.is_unresolved:
                continue
            if e.type == TimeExceptionType.MISSED_PUNCH:
                if not record.has_missed_punch:
                    self._ledger.discard(record, e)
            elif e.type == TimeExceptionType.SHORT_TIME:
                if scheduled - breaks - record.total_work_minutes <= 0:
                    self._ledger.discard(record, e)
            elif e.attendance_record_id == record.record_id:
                self._ledger.move_to(e, TimeExceptionStatus.RESOLVED)

        self._engine.refresh_finalisation(record)

    # --- queries ------------------------------------------------------------

    def get(self, request_id: int) -> CorrectionRequest:
        return self._get(request_id)

    def list_for_employee(self, employee_id: int) -> Sequence[CorrectionRequest]:
        return self._corrections.list(employee_id=require_id(employee_id, "Employee id"))

    def list_pending(self) -> Sequence[CorrectionRequest]:
        return self._corrections.list(statuses=[CorrectionStatus.SUBMITTED, CorrectionStatus.IN_REVIEW])

    def list_all(self) -> Sequence[CorrectionRequest]:
        return self._corrections.list()

    # --- ad-hoc requests ----------------------------------------------------

    def create_permission_request(
        self,
        *,
        employee_id: int,
        reason: str,
        deadline: Optional[datetime] = None,
        attendance_record_id: Optional[int] = None,
    ) -> AdHocRequest:
        return self._create_adhoc(AdHocKind.PERMISSION, employee_id, reason, deadline, attendance_record_id)

    def create_overtime_request(
        self,
        *,
        employee_id: int,
        reason: str,
        deadline: Optional[datetime] = None,
        attendance_record_id: Optional[int] = None,
    ) -> AdHocRequest:
        return self._create_adhoc(AdHocKind.OVERTIME, employee_id, reason, deadline, attendance_record_id)

    def _create_adhoc(
        self,
        kind: AdHocKind,
        employee_id: int,
        reason: str,
        deadline: Optional[datetime],
        record_id: Optional[int],
    ) -> AdHocRequest:
        employee_id = require_id(employee_id, "Employee id")
        reason = require_non_empty(reason, "Reason")
        now = self._clock()
        if deadline is not None and deadline <= now - timedelta(minutes=1):
            raise ValidationError("Deadline must not be in the past")
        if record_id is not None:
            record = self._load_record(require_id(record_id, "Attendance record id"))
            if record.employee_id != employee_id:
                raise ValidationError("Attendance record does not belong to this employee")

        req = self._corrections.add_adhoc(
            AdHocRequest(
                request_id=0,
                employee_id=employee_id,
                kind=kind,
                reason=reason,
                status=CorrectionStatus.SUBMITTED,
                created_at=now,
                deadline=deadline,
                attendance_record_id=record_id,
            )
        )
        logger.info("%s request %s created for employee %s", kind.value.title(), req.request_id, employee_id)
        return req

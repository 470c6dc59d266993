from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, Optional, Sequence

from ..common.datetime_utils import now_local, parse_punch_timestamp
from ..common.locks import RecordLocks
from ..common.validators import require_id
from ..core.enums import PunchType, TimeExceptionType, WindowMatch
from ..core.exceptions import NotFoundError, ValidationError
from ..shifts.resolver import ShiftWindow, ShiftWindowResolver
from ..time_exceptions.ledger import ExceptionLedger
from ..time_exceptions.repository import TimeExceptionRepository
from .model import AttendanceRecord, Punch
from .recompute import RecomputeEngine, RecomputeResult
from .repository import AttendanceRepository
from .strategies.base import PunchAction, PunchDecision
from .strategies.factory import PunchPolicyFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PunchOutcome:
    record: AttendanceRecord
    decision: PunchDecision
    window: ShiftWindow
    result: Optional[RecomputeResult] = None

    @property
    def stored(self) -> bool:
        return self.decision.stores_punch


class PunchService:
    def __init__(
        self,
        attendance: AttendanceRepository,
        exceptions: TimeExceptionRepository,
        resolver: ShiftWindowResolver,
        engine: RecomputeEngine,
        ledger: ExceptionLedger,
        *,
        strategy_factory: PunchPolicyFactory | None = None,
        locks: RecordLocks | None = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self._attendance = attendance
        self._exceptions = exceptions
        self._resolver = resolver
        self._engine = engine
        self._ledger = ledger
        self._factory = strategy_factory or PunchPolicyFactory()
        self._locks = locks or engine.locks
        self._clock = clock

    def punch_in(self, employee_id: int, time_text: Optional[str] = None, *, source: Optional[str] = None) -> PunchOutcome:
        employee_id = require_id(employee_id, "Employee id")
        at = parse_punch_timestamp(time_text, default=self._clock())
        window = self._resolver.resolve(employee_id, at)
        strategy = self._factory.for_shift(window.shift)
        work_date = at.date()

        with self._locks.hold((employee_id, work_date)):
            record = self._attendance.get_for_employee_and_date(employee_id, work_date)
            if record is None:
                record = self._attendance.create(employee_id=employee_id, work_date=work_date)

            self._check_same_day(record, PunchType.IN, at, window)
            decision = strategy.decide_in(punches=record.punches, at=at)
            if not decision.stores_punch:
                logger.info("Acknowledged IN punch for employee %s at %s: %s", employee_id, at, decision.note)
                return PunchOutcome(record=record, decision=decision, window=window)

            self._check_order(record, PunchType.IN, at)
            record.punches.add(Punch(type=PunchType.IN, time=at, source=source))
            self._attendance.save(record)
            logger.info("Recorded IN punch for employee %s at %s (record %s)", employee_id, at, record.record_id)

            result = self._engine.recompute(record.record_id, escalate=False)

        self._engine.escalate_lateness(result)
        return PunchOutcome(record=result.record, decision=decision, window=window, result=result)

    def punch_out(self, employee_id: int, time_text: Optional[str] = None, *, source: Optional[str] = None) -> PunchOutcome:
        employee_id = require_id(employee_id, "Employee id")
        at = parse_punch_timestamp(time_text, default=self._clock())
        window = self._resolver.resolve(employee_id, at)
        strategy = self._factory.for_shift(window.shift)

        work_date = at.date()
        if window.match == WindowMatch.PREVIOUS_DAY and window.anchor_date != work_date:
            previous = self._attendance.get_for_employee_and_date(employee_id, window.anchor_date)
            if previous is not None and previous.in_count > 0:
                work_date = window.anchor_date

        with self._locks.hold((employee_id, work_date)):
            record = self._attendance.get_for_employee_and_date(employee_id, work_date)
            if record is None:
                raise ValidationError("Cannot punch OUT. You must punch IN first.")

            self._check_same_day(record, PunchType.OUT, at, window)
            decision = strategy.decide_out(punches=record.punches, at=at)
            if not decision.stores_punch:
                logger.info("Acknowledged OUT punch for employee %s at %s: %s", employee_id, at, decision.note)
                return PunchOutcome(record=record, decision=decision, window=window)

            self._check_order(record, PunchType.OUT, at)
            punch = Punch(type=PunchType.OUT, time=at, source=source)
            if decision.action == PunchAction.REPLACE and decision.replaces is not None:
                record.punches.replace(decision.replaces, punch)
            else:
                record.punches.add(punch)

            removed = 0
            for e in self._exceptions.list_for_record(record.record_id):
                if e.type == TimeExceptionType.MISSED_PUNCH:
                    self._ledger.discard(record, e)
                    removed += 1
            self._attendance.save(record)
            logger.info("Recorded OUT punch for employee %s at %s (record %s)", employee_id, at, record.record_id)

            result = self._engine.recompute(
                record.record_id, suppress_late=removed > 0, suppress_short_time=True, escalate=False
            )

        self._engine.escalate_lateness(result)
        return PunchOutcome(record=result.record, decision=decision, window=window, result=result)

    @staticmethod
    def _check_same_day(record: AttendanceRecord, punch_type: PunchType, at: datetime, window: ShiftWindow) -> None:
        if at.date() == record.work_date:
            return
        overnight_out = (
            punch_type == PunchType.OUT
            and window.match == WindowMatch.PREVIOUS_DAY
            and window.anchor_date == record.work_date
            and at <= window.window_end
        )
        if not overnight_out:
            raise ValidationError("Cannot add punch to a different day")

    @staticmethod
    def _check_order(record: AttendanceRecord, punch_type: PunchType, at: datetime) -> None:
        last = record.punches.last()
        if last is not None and at < last.time:
            raise ValidationError("Punch time cannot be earlier than last recorded punch")
        if record.punches.contains(punch_type, at):
            raise ValidationError(f"Duplicate {punch_type.value} punch at same timestamp")

    # --- manual records & queries -------------------------------------------

    def create_record(self, employee_id: int, work_date: date, punches: Iterable[Punch] = ()) -> AttendanceRecord:
        employee_id = require_id(employee_id, "Employee id")
        punches = list(punches)
        with self._locks.hold((employee_id, work_date)):
            if self._attendance.get_for_employee_and_date(employee_id, work_date):
                raise ValidationError("An attendance record already exists for this employee and date")
            record = self._attendance.create(employee_id=employee_id, work_date=work_date, punches=punches)
            logger.info("Created attendance record %s for employee %s on %s", record.record_id, employee_id, work_date)
            if not punches:
                return record
            result = self._engine.recompute(record.record_id, escalate=False)

        self._engine.escalate_lateness(result)
        return result.record

    def get_record(self, record_id: int) -> AttendanceRecord:
        record = self._attendance.get_by_id(require_id(record_id, "Attendance record id"))
        if not record:
            raise NotFoundError(f"Attendance record {record_id} not found")
        return record

    def get_today_record(self, employee_id: int) -> Optional[AttendanceRecord]:
        return self._attendance.get_for_employee_and_date(require_id(employee_id, "Employee id"), self._clock().date())

    def get_monthly_records(self, employee_id: int, month: int, year: int) -> Sequence[AttendanceRecord]:
        if not 1 <= int(month) <= 12:
            raise ValidationError("Month must be between 1 and 12")
        start = date(int(year), int(month), 1)
        end = date(int(year), int(month), calendar.monthrange(int(year), int(month))[1])
        return self._attendance.list_for_employee(require_id(employee_id, "Employee id"), start_date=start, end_date=end)

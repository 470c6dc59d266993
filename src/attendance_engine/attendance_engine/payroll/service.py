from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Sequence

from ..attendance.model import AttendanceRecord
from ..attendance.recompute import RecomputeEngine, RecomputeResult
from ..attendance.repository import AttendanceRepository
from ..core.exceptions import DomainError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class PeriodRecompute:
    results: List[RecomputeResult] = field(default_factory=list)
    failed_record_ids: List[int] = field(default_factory=list)


class PayrollReadinessService:
    """Entry point for payroll to refresh and read finalised attendance."""

    def __init__(self, attendance: AttendanceRepository, engine: RecomputeEngine):
        self._attendance = attendance
        self._engine = engine

    def recompute_period(self, start_date: date, end_date: date) -> PeriodRecompute:
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date")
        outcome = PeriodRecompute()
        for record in self._attendance.list_between(start_date=start_date, end_date=end_date):
            try:
                outcome.results.append(self._engine.recompute(record.record_id))
            except DomainError:
                logger.exception("Recompute failed for attendance record %s", record.record_id)
                outcome.failed_record_ids.append(record.record_id)
        logger.info(
            "Recomputed %s records for %s..%s (%s failed)",
            len(outcome.results), start_date, end_date, len(outcome.failed_record_ids),
        )
        return outcome

    def payroll_ready_records(self, start_date: date, end_date: date) -> Sequence[AttendanceRecord]:
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date")
        return [
            r
            for r in self._attendance.list_between(start_date=start_date, end_date=end_date)
            if r.finalised_for_payroll
        ]

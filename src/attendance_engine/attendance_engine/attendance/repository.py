from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from .model import AttendanceRecord, Punch


class AttendanceRepository(Protocol):
    def get_by_id(self, record_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_employee_and_date(self, employee_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def create(self, *, employee_id: int, work_date: date, punches: Iterable[Punch] = ()) -> AttendanceRecord:
        raise NotImplementedError

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        """Persist the aggregate; raises ConcurrencyError on a stale version."""

        raise NotImplementedError

    def list_for_employee(self, employee_id: int, *, start_date: date, end_date: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_between(self, *, start_date: date, end_date: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional

from ..core.enums import PunchType
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class Punch:
    """A single IN or OUT punch."""

    type: PunchType
    time: datetime
    source: Optional[str] = None

    def sort_key(self):
        return (self.time, 0 if self.type == PunchType.IN else 1)


class PunchSequence:
    """Punches of one record, always sorted by time.

    Every mutation re-checks the invariants: chronological order and no two
    punches of the same type at the same timestamp.
    """

    def __init__(self, punches: Iterable[Punch] = ()):
        self._items: List[Punch] = []
        for p in punches:
            self.add(p)

    def __iter__(self) -> Iterator[Punch]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PunchSequence):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"PunchSequence({self._items!r})"

    def as_list(self) -> List[Punch]:
        return list(self._items)

    def last(self) -> Optional[Punch]:
        return self._items[-1] if self._items else None

    def of_type(self, punch_type: PunchType) -> List[Punch]:
        return [p for p in self._items if p.type == punch_type]

    def count(self, punch_type: PunchType) -> int:
        return sum(1 for p in self._items if p.type == punch_type)

    def first_of(self, punch_type: PunchType) -> Optional[Punch]:
        for p in self._items:
            if p.type == punch_type:
                return p
        return None

    def last_of(self, punch_type: PunchType) -> Optional[Punch]:
        for p in reversed(self._items):
            if p.type == punch_type:
                return p
        return None

    def contains(self, punch_type: PunchType, at: datetime) -> bool:
        return any(p.type == punch_type and p.time == at for p in self._items)

    def add(self, punch: Punch) -> None:
        if self.contains(punch.type, punch.time):
            raise ValidationError(f"Duplicate {punch.type.value} punch at same timestamp")
        keys = [p.sort_key() for p in self._items]
        self._items.insert(bisect.bisect_right(keys, punch.sort_key()), punch)

    def remove(self, punch: Punch) -> None:
        try:
            self._items.remove(punch)
        except ValueError:
            raise ValidationError("Punch is not part of this record")

    def replace(self, old: Punch, new: Punch) -> None:
        self.remove(old)
        try:
            self.add(new)
        except ValidationError:
            self.add(old)
            raise


@dataclass
class AttendanceRecord:
    """Domain entity: one attendance record per employee and work date.

    ``exception_ids``/``correction_ids`` are lookup indexes only; the
    exceptions and requests live in their own repositories.
    """

    record_id: int
    employee_id: int
    work_date: date
    punches: PunchSequence = field(default_factory=PunchSequence)
    total_work_minutes: int = 0
    has_missed_punch: bool = False
    finalised_for_payroll: bool = False
    exception_ids: List[int] = field(default_factory=list)
    correction_ids: List[int] = field(default_factory=list)
    version: int = 0

    @property
    def in_count(self) -> int:
        return self.punches.count(PunchType.IN)

    @property
    def out_count(self) -> int:
        return self.punches.count(PunchType.OUT)

    @property
    def has_complete_pair(self) -> bool:
        return self.in_count >= 1 and self.out_count >= 1

    def link_exception(self, exception_id: int) -> None:
        if exception_id not in self.exception_ids:
            self.exception_ids.append(exception_id)

    def unlink_exception(self, exception_id: int) -> None:
        if exception_id in self.exception_ids:
            self.exception_ids.remove(exception_id)

    def link_correction(self, request_id: int) -> None:
        if request_id not in self.correction_ids:
            self.correction_ids.append(request_id)

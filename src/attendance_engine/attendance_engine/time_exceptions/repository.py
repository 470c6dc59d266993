from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import TimeExceptionStatus, TimeExceptionType
from .model import TimeException


class TimeExceptionRepository(Protocol):
    def add(self, exception: TimeException) -> TimeException:
        """Store a new exception; the returned copy carries the assigned id."""

        raise NotImplementedError

    def get(self, exception_id: int) -> Optional[TimeException]:
        raise NotImplementedError

    def update(self, exception: TimeException) -> TimeException:
        raise NotImplementedError

    def delete(self, exception_id: int) -> bool:
        raise NotImplementedError

    def list_for_record(self, record_id: int) -> Sequence[TimeException]:
        raise NotImplementedError

    def list(
        self,
        *,
        employee_id: Optional[int] = None,
        type: Optional[TimeExceptionType] = None,
        statuses: Optional[Sequence[TimeExceptionStatus]] = None,
        assigned_to: Optional[int] = None,
        created_since: Optional[datetime] = None,
    ) -> Sequence[TimeException]:
        raise NotImplementedError

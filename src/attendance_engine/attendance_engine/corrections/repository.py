from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import CorrectionStatus
from .model import AdHocRequest, CorrectionRequest


class CorrectionRepository(Protocol):
    def add(self, request: CorrectionRequest) -> CorrectionRequest:
        raise NotImplementedError

    def get(self, request_id: int) -> Optional[CorrectionRequest]:
        raise NotImplementedError

    def update(self, request: CorrectionRequest) -> CorrectionRequest:
        raise NotImplementedError

    def list_for_record(self, record_id: int) -> Sequence[CorrectionRequest]:
        raise NotImplementedError

    def list(
        self,
        *,
        employee_id: Optional[int] = None,
        statuses: Optional[Sequence[CorrectionStatus]] = None,
        created_before: Optional[datetime] = None,
    ) -> Sequence[CorrectionRequest]:
        raise NotImplementedError

    def add_adhoc(self, request: AdHocRequest) -> AdHocRequest:
        raise NotImplementedError

    def update_adhoc(self, request: AdHocRequest) -> AdHocRequest:
        raise NotImplementedError

    def list_adhoc(
        self,
        *,
        employee_id: Optional[int] = None,
        deadline_before: Optional[datetime] = None,
    ) -> Sequence[AdHocRequest]:
        raise NotImplementedError

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AdHocKind, CorrectionKind, CorrectionStatus


@dataclass(frozen=True)
class CorrectionDetail:
    kind: CorrectionKind
    corrected_at: datetime
    # Time of the punch being corrected, captured at submission.
    recorded_at: Optional[datetime] = None


@dataclass(frozen=True)
class CorrectionRequest:
    """Attendance correction request submitted by an employee."""

    request_id: int
    employee_id: int
    attendance_record_id: int
    status: CorrectionStatus
    reason: str
    detail: CorrectionDetail
    created_at: datetime
    is_redundant: bool = False
    reviewer_id: Optional[int] = None
    review_note: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None


@dataclass(frozen=True)
class AdHocRequest:
    """Deadline-bearing permission or overtime request."""

    request_id: int
    employee_id: int
    kind: AdHocKind
    reason: str
    status: CorrectionStatus
    created_at: datetime
    deadline: Optional[datetime] = None
    attendance_record_id: Optional[int] = None
    escalated_at: Optional[datetime] = None

from __future__ import annotations

from datetime import datetime

from ...core.enums import PunchType
from ...core.exceptions import ValidationError
from ..model import PunchSequence
from .base import PunchAction, PunchDecision, PunchPolicyStrategy


class MultipleStrategy(PunchPolicyStrategy):
    """Every punch is stored; IN and OUT must alternate."""

    def decide_in(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        last = punches.last()
        if last is not None and last.type == PunchType.IN:
            raise ValidationError("Cannot punch IN again. You must punch OUT first.")
        return PunchDecision(PunchAction.RECORD)

    def decide_out(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        last = punches.last()
        if last is None or last.type != PunchType.IN:
            raise ValidationError("Cannot punch OUT. You must punch IN first.")
        return PunchDecision(PunchAction.RECORD)

from __future__ import annotations

from datetime import datetime

from ...core.enums import PunchType
from ...core.exceptions import ValidationError
from ..model import PunchSequence
from .base import PunchAction, PunchDecision, PunchPolicyStrategy


class FirstLastStrategy(PunchPolicyStrategy):
    """Only the first IN and the latest OUT are kept."""

    def decide_in(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        if punches.first_of(PunchType.IN):
            return PunchDecision(PunchAction.ACKNOWLEDGE, note="First IN already recorded")
        return PunchDecision(PunchAction.RECORD)

    def decide_out(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        if not punches.first_of(PunchType.IN):
            raise ValidationError("Cannot punch OUT. You must punch IN first.")
        current = punches.last_of(PunchType.OUT)
        if current is None:
            return PunchDecision(PunchAction.RECORD)
        if at > current.time:
            return PunchDecision(PunchAction.REPLACE, replaces=current)
        return PunchDecision(PunchAction.ACKNOWLEDGE, note="A later OUT is already recorded")

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...core.enums import PunchPolicy
from ...shifts.model import Shift
from .base import PunchPolicyStrategy
from .first_last_strategy import FirstLastStrategy
from .multiple_strategy import MultipleStrategy


@dataclass
class PunchPolicyFactory:
    """Factory Pattern: choose the storage strategy from the shift's punch policy."""

    def for_shift(self, shift: Optional[Shift]) -> PunchPolicyStrategy:
        if shift is not None and shift.punch_policy == PunchPolicy.MULTIPLE:
            return MultipleStrategy()
        return FirstLastStrategy()

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..model import Punch, PunchSequence


class PunchAction(str, Enum):
    RECORD = "RECORD"
    REPLACE = "REPLACE"
    ACKNOWLEDGE = "ACKNOWLEDGE"


@dataclass(frozen=True)
class PunchDecision:
    action: PunchAction
    replaces: Optional[Punch] = None
    note: Optional[str] = None

    @property
    def stores_punch(self) -> bool:
        return self.action != PunchAction.ACKNOWLEDGE


class PunchPolicyStrategy(ABC):
    """Strategy Pattern: encapsulate how a punch policy stores punches.

    Sequencing errors are raised as ValidationError.
    """

    @abstractmethod
    def decide_in(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        raise NotImplementedError

    @abstractmethod
    def decide_out(self, *, punches: PunchSequence, at: datetime) -> PunchDecision:
        raise NotImplementedError

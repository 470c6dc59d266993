from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class ShiftWindowError(ValidationError):
    """Raised when a punch cannot be matched to an allowed shift window."""

    def __init__(self, message: str, *, rule: Optional[str] = None):
        super().__init__(message)
        self.rule = rule


class InvalidTransitionError(ValidationError):
    """Raised when a workflow status change is not in the transition table."""


class NotFoundError(DomainError):
    """Raised when a referenced record, exception or request does not exist."""


class ConcurrencyError(DomainError):
    """Raised when an attendance record was modified by someone else."""

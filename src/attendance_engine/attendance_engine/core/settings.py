from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from . import constants
from .exceptions import ValidationError


def _positive_int(raw: Any, name: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be greater than 0")
    return value


def _id_list(raw: Any, name: str) -> Tuple[int, ...]:
    if raw is None or raw == "":
        return ()
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    ids = []
    for item in items:
        text = str(item).strip()
        if not text:
            continue
        try:
            ids.append(int(text))
        except ValueError:
            raise ValidationError(f"{name} contains an invalid id: {text!r}")
    return tuple(ids)


@dataclass(frozen=True)
class EngineSettings:
    """Validated thresholds injected into services at construction."""

    correction_escalation_days: int = constants.DEFAULT_CORRECTION_ESCALATION_DAYS
    break_max_minutes: int = constants.DEFAULT_BREAK_MAX_MINUTES
    lateness_window_days: int = constants.DEFAULT_LATENESS_WINDOW_DAYS
    lateness_threshold: int = constants.DEFAULT_LATENESS_THRESHOLD
    repeated_lateness_rule_name: str = constants.DEFAULT_REPEATED_LATENESS_RULE
    exception_escalation_days_before_cutoff: int = constants.DEFAULT_EXCEPTION_ESCALATION_DAYS
    shift_expiry_notice_days: int = constants.DEFAULT_SHIFT_EXPIRY_NOTICE_DAYS
    system_user_id: Optional[int] = None
    hr_reviewer_ids: Tuple[int, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "EngineSettings":
        """Build settings from the ENGINE mapping of a settings module."""

        system_user = values.get("SYSTEM_USER_ID")
        system_user_id = None
        if system_user not in (None, ""):
            system_user_id = _positive_int(system_user, "SYSTEM_USER_ID", 0)

        rule_name = str(values.get("REPEATED_LATENESS_RULE_NAME") or constants.DEFAULT_REPEATED_LATENESS_RULE).strip()

        return cls(
            correction_escalation_days=_positive_int(
                values.get("CORRECTION_ESCALATION_DAYS"),
                "CORRECTION_ESCALATION_DAYS",
                constants.DEFAULT_CORRECTION_ESCALATION_DAYS,
            ),
            break_max_minutes=_positive_int(
                values.get("BREAK_PERMISSION_MAX_MINUTES"),
                "BREAK_PERMISSION_MAX_MINUTES",
                constants.DEFAULT_BREAK_MAX_MINUTES,
            ),
            lateness_window_days=_positive_int(
                values.get("LATENESS_THRESHOLD_WINDOW_DAYS"),
                "LATENESS_THRESHOLD_WINDOW_DAYS",
                constants.DEFAULT_LATENESS_WINDOW_DAYS,
            ),
            lateness_threshold=_positive_int(
                values.get("LATENESS_THRESHOLD_OCCURRENCES"),
                "LATENESS_THRESHOLD_OCCURRENCES",
                constants.DEFAULT_LATENESS_THRESHOLD,
            ),
            repeated_lateness_rule_name=rule_name or constants.DEFAULT_REPEATED_LATENESS_RULE,
            exception_escalation_days_before_cutoff=_positive_int(
                values.get("TIME_EXCEPTION_ESCALATION_DAYS"),
                "TIME_EXCEPTION_ESCALATION_DAYS",
                constants.DEFAULT_EXCEPTION_ESCALATION_DAYS,
            ),
            shift_expiry_notice_days=_positive_int(
                values.get("SHIFT_EXPIRY_NOTIFICATION_DAYS"),
                "SHIFT_EXPIRY_NOTIFICATION_DAYS",
                constants.DEFAULT_SHIFT_EXPIRY_NOTICE_DAYS,
            ),
            system_user_id=system_user_id,
            hr_reviewer_ids=_id_list(values.get("HR_REVIEWER_IDS"), "HR_REVIEWER_IDS"),
        )

    @property
    def default_reviewer_id(self) -> Optional[int]:
        if self.hr_reviewer_ids:
            return self.hr_reviewer_ids[0]
        return self.system_user_id

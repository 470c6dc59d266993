from __future__ import annotations

from datetime import date, datetime

import pytest

from attendance_engine.attendance.model import Punch
from attendance_engine.core.enums import PunchType
from attendance_engine.core.exceptions import ValidationError

from conftest import EMPLOYEE_ID, WORK_DAY


def test_recompute_period_and_ready_records(env):
    svc = env.container.punch_service
    complete = svc.create_record(
        EMPLOYEE_ID,
        WORK_DAY,
        [Punch(PunchType.IN, datetime(2026, 10, 12, 9)), Punch(PunchType.OUT, datetime(2026, 10, 12, 17))],
    )
    svc.create_record(EMPLOYEE_ID, date(2026, 10, 13), [Punch(PunchType.IN, datetime(2026, 10, 13, 9))])
    payroll = env.container.payroll_service

    outcome = payroll.recompute_period(date(2026, 10, 1), date(2026, 10, 31))
    ready = payroll.payroll_ready_records(date(2026, 10, 1), date(2026, 10, 31))

    assert len(outcome.results) == 2
    assert outcome.failed_record_ids == []
    assert [r.record_id for r in ready] == [complete.record_id]


def test_period_must_be_ordered(env):
    with pytest.raises(ValidationError):
        env.container.payroll_service.recompute_period(date(2026, 10, 31), date(2026, 10, 1))

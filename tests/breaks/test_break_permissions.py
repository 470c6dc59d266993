from __future__ import annotations

from datetime import datetime

import pytest

from attendance_engine.attendance.model import Punch
from attendance_engine.core.enums import PunchType, TimeExceptionStatus, TimeExceptionType
from attendance_engine.core.exceptions import InvalidTransitionError, ValidationError
from attendance_engine.notifications.model import NotificationType
from attendance_engine.time_exceptions.model import BreakPermission

from conftest import EMPLOYEE_ID, REVIEWER_ID, WORK_DAY


def full_day(env):
    return env.container.punch_service.create_record(
        EMPLOYEE_ID,
        WORK_DAY,
        [Punch(PunchType.IN, datetime(2026, 10, 12, 9)), Punch(PunchType.OUT, datetime(2026, 10, 12, 17))],
    )


def request_break(env, record, start="12/10/2026 12:00", end="12/10/2026 12:30", employee_id=EMPLOYEE_ID):
    return env.container.break_service.create(
        employee_id=employee_id,
        attendance_record_id=record.record_id,
        start_time=start,
        end_time=end,
        reason="Lunch",
    )


def test_create_stores_pending_permission_and_unfinalises(env):
    record = full_day(env)

    permission = request_break(env, record)

    assert isinstance(permission, BreakPermission)
    assert permission.type == TimeExceptionType.BREAK_PERMISSION
    assert permission.status == TimeExceptionStatus.PENDING
    assert permission.duration_minutes == 30
    stored = env.attendance.get_by_id(record.record_id)
    assert permission.exception_id in stored.exception_ids
    assert stored.finalised_for_payroll is False


def test_approved_break_offsets_short_time(env):
    record = full_day(env)
    svc = env.container.break_service
    permission = request_break(env, record)

    svc.approve(permission.exception_id, reviewer_id=REVIEWER_ID)
    assert env.attendance.get_by_id(record.record_id).finalised_for_payroll is False

    result = env.container.recompute_engine.recompute(record.record_id)

    assert result.total_work_minutes == 450
    assert result.short_time_minutes == 0
    assert env.exceptions_of(TimeExceptionType.SHORT_TIME) == []
    assert env.attendance.get_by_id(record.record_id).finalised_for_payroll is True
    assert svc.calculate_approved_break_minutes(record.record_id) == 30
    assert env.log.of_type(NotificationType.BREAK_PERMISSION_APPROVED)


def test_rejected_break_is_not_counted(env):
    record = full_day(env)
    svc = env.container.break_service
    permission = request_break(env, record)

    rejected = svc.reject(permission.exception_id, reviewer_id=REVIEWER_ID)

    assert rejected.status == TimeExceptionStatus.REJECTED
    assert svc.calculate_approved_break_minutes(record.record_id) == 0
    with pytest.raises(InvalidTransitionError):
        svc.approve(permission.exception_id)


def test_end_must_follow_start(env):
    record = full_day(env)

    with pytest.raises(ValidationError, match="after start"):
        request_break(env, record, start="12/10/2026 12:30", end="12/10/2026 12:30")


def test_duration_over_maximum_is_rejected(env):
    record = full_day(env)
    env.container.break_service.set_max_minutes(20)

    with pytest.raises(ValidationError, match="exceeds the maximum of 20 minutes"):
        request_break(env, record)


def test_default_maximum_and_setter_validation(env):
    svc = env.container.break_service

    assert svc.get_max_minutes() == 180
    with pytest.raises(ValidationError):
        svc.set_max_minutes(0)
    assert svc.set_max_minutes("45") == 45


def test_record_must_belong_to_employee(env):
    record = full_day(env)

    with pytest.raises(ValidationError, match="does not belong"):
        request_break(env, record, employee_id=8)


def test_delete_only_pending(env):
    record = full_day(env)
    svc = env.container.break_service
    first = request_break(env, record)
    second = request_break(env, record, start="12/10/2026 15:00", end="12/10/2026 15:10")
    svc.approve(second.exception_id)

    svc.delete(EMPLOYEE_ID, first.exception_id)

    assert env.exceptions.get(first.exception_id) is None
    assert first.exception_id not in env.attendance.get_by_id(record.record_id).exception_ids
    with pytest.raises(ValidationError, match="Only pending"):
        svc.delete(EMPLOYEE_ID, second.exception_id)


def test_list_permissions_by_status(env):
    record = full_day(env)
    svc = env.container.break_service
    first = request_break(env, record)
    request_break(env, record, start="12/10/2026 15:00", end="12/10/2026 15:10")
    svc.approve(first.exception_id)

    approved = svc.list_permissions(employee_id=EMPLOYEE_ID, status=TimeExceptionStatus.APPROVED)

    assert [p.exception_id for p in approved] == [first.exception_id]
    assert len(svc.list_permissions(employee_id=EMPLOYEE_ID)) == 2

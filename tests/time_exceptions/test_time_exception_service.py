from __future__ import annotations

from datetime import date, datetime

import pytest

from attendance_engine.attendance.model import Punch
from attendance_engine.core.enums import PunchType, TimeExceptionStatus, TimeExceptionType
from attendance_engine.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from attendance_engine.notifications.model import NotificationType

from conftest import EMPLOYEE_ID, WORK_DAY


def short_day(env, out_hour=16):
    return env.container.punch_service.create_record(
        EMPLOYEE_ID,
        WORK_DAY,
        [Punch(PunchType.IN, datetime(2026, 10, 12, 9)), Punch(PunchType.OUT, datetime(2026, 10, 12, out_hour))],
    )


def test_manual_exception_is_linked_and_blocks_finalisation(env):
    record = short_day(env, out_hour=17)
    svc = env.container.time_exception_service

    created = svc.create(
        employee_id=EMPLOYEE_ID,
        attendance_record_id=record.record_id,
        type=TimeExceptionType.MANUAL_ADJUSTMENT,
        reason="Badge reader offline",
    )

    stored = env.attendance.get_by_id(record.record_id)
    assert created.status == TimeExceptionStatus.OPEN
    assert created.exception_id in stored.exception_ids
    assert stored.finalised_for_payroll is False


def test_break_permission_cannot_be_created_here(env):
    record = short_day(env, out_hour=17)

    with pytest.raises(ValidationError):
        env.container.time_exception_service.create(
            employee_id=EMPLOYEE_ID,
            attendance_record_id=record.record_id,
            type=TimeExceptionType.BREAK_PERMISSION,
            reason="lunch",
        )


def test_assign_moves_open_to_pending(env):
    record = short_day(env)
    svc = env.container.time_exception_service
    short = env.exceptions_of(TimeExceptionType.SHORT_TIME)[0]

    assigned = svc.assign(short.exception_id, 55)

    assert assigned.status == TimeExceptionStatus.PENDING
    assert assigned.assigned_to == 55
    assert svc.list(assigned_to=55) == [assigned]
    assert record.record_id == assigned.attendance_record_id


def test_update_status_enforces_table(env):
    short_day(env)
    svc = env.container.time_exception_service
    short = env.exceptions_of(TimeExceptionType.SHORT_TIME)[0]

    with pytest.raises(InvalidTransitionError):
        svc.update_status(short.exception_id, TimeExceptionStatus.RESOLVED)
    assert svc.get(short.exception_id).status == TimeExceptionStatus.OPEN


def test_resolving_satisfied_short_time_deletes_it_and_its_notifications(env):
    record = short_day(env)
    svc = env.container.time_exception_service
    short = env.exceptions_of(TimeExceptionType.SHORT_TIME)[0]
    assert env.log.of_type(NotificationType.SHORT_TIME)

    stored = env.attendance.get_by_id(record.record_id)
    stored.punches.replace(stored.punches.last_of(PunchType.OUT), Punch(PunchType.OUT, datetime(2026, 10, 12, 17)))
    env.attendance.save(stored)

    svc.assign(short.exception_id, 55)
    svc.update_status(short.exception_id, TimeExceptionStatus.APPROVED)
    result = svc.update_status(short.exception_id, TimeExceptionStatus.RESOLVED)

    assert result is None
    assert env.exceptions.get(short.exception_id) is None
    assert short.exception_id not in env.attendance.get_by_id(record.record_id).exception_ids
    assert env.log.of_type(NotificationType.SHORT_TIME) == []


def test_resolving_short_time_keeps_other_days_notifications(env):
    monday = short_day(env)
    tuesday = env.container.punch_service.create_record(
        EMPLOYEE_ID,
        date(2026, 10, 13),
        [Punch(PunchType.IN, datetime(2026, 10, 13, 9)), Punch(PunchType.OUT, datetime(2026, 10, 13, 16))],
    )
    svc = env.container.time_exception_service
    short = env.exceptions_of(TimeExceptionType.SHORT_TIME, monday.record_id)[0]

    stored = env.attendance.get_by_id(monday.record_id)
    stored.punches.replace(stored.punches.last_of(PunchType.OUT), Punch(PunchType.OUT, datetime(2026, 10, 12, 17)))
    env.attendance.save(stored)
    svc.assign(short.exception_id, 55)
    svc.update_status(short.exception_id, TimeExceptionStatus.APPROVED)
    svc.update_status(short.exception_id, TimeExceptionStatus.RESOLVED)

    remaining = env.log.of_type(NotificationType.SHORT_TIME)
    assert [n.reference for n in remaining] == [f"record:{tuesday.record_id}"]


def test_resolving_unsatisfied_short_time_keeps_it(env):
    short_day(env)
    svc = env.container.time_exception_service
    short = env.exceptions_of(TimeExceptionType.SHORT_TIME)[0]

    svc.assign(short.exception_id, 55)
    svc.update_status(short.exception_id, TimeExceptionStatus.ESCALATED)
    result = svc.update_status(short.exception_id, TimeExceptionStatus.RESOLVED)

    assert result.status == TimeExceptionStatus.RESOLVED
    assert env.exceptions.get(short.exception_id) is not None


def test_resolving_last_exception_refreshes_finalisation(env):
    record = short_day(env, out_hour=17)
    svc = env.container.time_exception_service
    manual = svc.create(
        employee_id=EMPLOYEE_ID,
        attendance_record_id=record.record_id,
        type=TimeExceptionType.MANUAL_ADJUSTMENT,
        reason="Check badge log",
    )

    svc.assign(manual.exception_id, 55)
    svc.update_status(manual.exception_id, TimeExceptionStatus.APPROVED)
    resolved = svc.update_status(manual.exception_id, TimeExceptionStatus.RESOLVED)

    assert resolved.status == TimeExceptionStatus.RESOLVED
    assert env.attendance.get_by_id(record.record_id).finalised_for_payroll is True


def test_missing_exception_is_not_found(env):
    with pytest.raises(NotFoundError):
        env.container.time_exception_service.get(404)


def test_export_csv_lists_every_exception(env):
    short_day(env)

    lines = env.container.time_exception_service.export_csv().strip().splitlines()

    assert lines[0].startswith("exception_id,employee_id,attendance_record_id,type,status")
    assert len(lines) == 2
    assert ",SHORT_TIME,OPEN," in lines[1]

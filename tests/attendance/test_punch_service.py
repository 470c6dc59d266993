from __future__ import annotations

import threading
from datetime import date, datetime, time

import pytest

from attendance_engine.core.enums import PunchType, TimeExceptionType
from attendance_engine.core.exceptions import NotFoundError, ShiftWindowError, ValidationError
from attendance_engine.notifications.model import NotificationType

from conftest import EMPLOYEE_ID, WORK_DAY, build_harness, office_shift
from fakes import FailingLog


def test_first_last_in_then_out_gives_full_day_and_finalises(env):
    svc = env.container.punch_service

    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    outcome = svc.punch_out(EMPLOYEE_ID, "12/10/2026 17:00")

    record = env.attendance.get_by_id(outcome.record.record_id)
    assert record.total_work_minutes == 480
    assert record.finalised_for_payroll is True
    assert record.has_missed_punch is False
    assert record.exception_ids == []
    assert env.exceptions.all() == []


def test_punch_in_opens_missed_punch_and_notifies(env):
    outcome = env.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")

    record = env.attendance.get_by_id(outcome.record.record_id)
    missed = env.exceptions_of(TimeExceptionType.MISSED_PUNCH)
    assert record.has_missed_punch is True
    assert record.finalised_for_payroll is False
    assert [e.exception_id for e in missed] == record.exception_ids
    assert env.log.of_type(NotificationType.MISSED_PUNCH)[0].recipient_id == EMPLOYEE_ID


def test_late_in_creates_late_exception_with_minutes(env):
    outcome = env.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:20")

    late = env.exceptions_of(TimeExceptionType.LATE)
    assert len(late) == 1
    assert late[0].minutes == 10
    assert outcome.result.lateness_minutes == 10
    assert late[0].exception_id in env.attendance.get_by_id(outcome.record.record_id).exception_ids


def test_second_in_under_first_last_is_acknowledged_without_storing(env):
    svc = env.container.punch_service
    first = svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    before = env.attendance.get_by_id(first.record.record_id)

    second = svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:05")

    after = env.attendance.get_by_id(first.record.record_id)
    assert second.stored is False
    assert after.punches == before.punches
    assert after.version == before.version


def test_first_last_keeps_only_latest_out(env):
    svc = env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    svc.punch_out(EMPLOYEE_ID, "12/10/2026 16:00")
    replaced = svc.punch_out(EMPLOYEE_ID, "12/10/2026 17:00")
    ignored = svc.punch_out(EMPLOYEE_ID, "12/10/2026 16:30")

    record = env.attendance.get_by_id(replaced.record.record_id)
    assert replaced.stored is True
    assert ignored.stored is False
    assert [p.time.time() for p in record.punches.of_type(PunchType.OUT)] == [time(17, 0)]
    assert record.total_work_minutes == 480


def test_out_without_in_is_rejected(env):
    with pytest.raises(ValidationError, match="must punch IN first"):
        env.container.punch_service.punch_out(EMPLOYEE_ID, "12/10/2026 17:00")


def test_multiple_policy_records_every_pair(multiple_env):
    svc = multiple_env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    svc.punch_out(EMPLOYEE_ID, "12/10/2026 12:00")
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 13:00")
    outcome = svc.punch_out(EMPLOYEE_ID, "12/10/2026 17:00")

    record = multiple_env.attendance.get_by_id(outcome.record.record_id)
    assert len(record.punches) == 4
    assert record.total_work_minutes == 420
    assert multiple_env.exceptions_of(TimeExceptionType.MISSED_PUNCH) == []


def test_multiple_policy_rejects_two_ins_in_a_row(multiple_env):
    svc = multiple_env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")

    with pytest.raises(ValidationError, match="Cannot punch IN again"):
        svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:30")


def test_punch_earlier_than_last_is_rejected(multiple_env):
    svc = multiple_env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 10:00")

    with pytest.raises(ValidationError, match="earlier than last recorded punch"):
        svc.punch_out(EMPLOYEE_ID, "12/10/2026 09:30")


def test_out_clears_missed_punch_and_does_not_flag_lateness(env):
    svc = env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    assert env.exceptions_of(TimeExceptionType.MISSED_PUNCH)

    outcome = svc.punch_out(EMPLOYEE_ID, "12/10/2026 17:00")

    assert env.exceptions_of(TimeExceptionType.MISSED_PUNCH) == []
    assert outcome.result.late_exception_created is False


def test_early_out_does_not_open_short_time_in_same_pass(env):
    svc = env.container.punch_service
    svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    outcome = svc.punch_out(EMPLOYEE_ID, "12/10/2026 16:00")

    assert outcome.result.short_time_minutes == 60
    assert env.exceptions_of(TimeExceptionType.SHORT_TIME) == []


def test_invalid_timestamp_format(env):
    with pytest.raises(ValidationError, match="dd/mm/yyyy hh:mm"):
        env.container.punch_service.punch_in(EMPLOYEE_ID, "2026-10-12 09:00")


def test_default_timestamp_uses_clock(env):
    env.clock.now = datetime(2026, 10, 12, 9, 0)
    outcome = env.container.punch_service.punch_in(EMPLOYEE_ID)

    assert outcome.record.punches.first_of(PunchType.IN).time == datetime(2026, 10, 12, 9, 0)


def test_source_tag_is_kept(env):
    outcome = env.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:00", source="KIOSK-1")

    assert outcome.record.punches.first_of(PunchType.IN).source == "KIOSK-1"


def test_holiday_punch_is_rejected(env):
    env.holidays.days.add(WORK_DAY)

    with pytest.raises(ShiftWindowError) as exc:
        env.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")
    assert exc.value.rule == "HOLIDAY"


def test_overnight_out_attaches_to_previous_day(settings):
    h = build_harness(shift=office_shift(start_time=time(22, 0), end_time=time(6, 0)), settings=settings)
    svc = h.container.punch_service

    first = svc.punch_in(EMPLOYEE_ID, "12/10/2026 22:00")
    outcome = svc.punch_out(EMPLOYEE_ID, "13/10/2026 06:00")

    assert outcome.record.record_id == first.record.record_id
    record = h.attendance.get_by_id(first.record.record_id)
    assert record.work_date == date(2026, 10, 12)
    assert record.total_work_minutes == 480
    assert h.attendance.get_for_employee_and_date(EMPLOYEE_ID, date(2026, 10, 13)) is None


def test_notification_failure_does_not_fail_the_punch(settings):
    h = build_harness(shift=office_shift(), settings=settings, log=FailingLog())

    outcome = h.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")

    assert outcome.stored is True
    assert h.exceptions_of(TimeExceptionType.MISSED_PUNCH)


def test_record_queries(env):
    svc = env.container.punch_service
    outcome = svc.punch_in(EMPLOYEE_ID, "12/10/2026 09:00")

    assert svc.get_record(outcome.record.record_id).record_id == outcome.record.record_id
    assert svc.get_today_record(EMPLOYEE_ID).record_id == outcome.record.record_id
    assert [r.record_id for r in svc.get_monthly_records(EMPLOYEE_ID, 10, 2026)] == [outcome.record.record_id]
    assert svc.get_monthly_records(EMPLOYEE_ID, 9, 2026) == []
    with pytest.raises(NotFoundError):
        svc.get_record(999)
    with pytest.raises(ValidationError):
        svc.get_monthly_records(EMPLOYEE_ID, 13, 2026)


def test_create_record_rejects_duplicate_day(env):
    svc = env.container.punch_service
    svc.create_record(EMPLOYEE_ID, WORK_DAY)

    with pytest.raises(ValidationError, match="already exists"):
        svc.create_record(EMPLOYEE_ID, WORK_DAY)


def test_lateness_escalation_runs_after_record_lock_is_released(env):
    engine = env.container.recompute_engine
    real = env.container.lateness_escalator
    acquired_elsewhere = []

    class CheckingEscalator:
        def evaluate(self, employee_id):
            lock = engine.locks._lock_for((employee_id, WORK_DAY))
            got = []

            def grab():
                ok = lock.acquire(timeout=2)
                if ok:
                    lock.release()
                got.append(ok)

            other = threading.Thread(target=grab)
            other.start()
            other.join(timeout=5)
            acquired_elsewhere.append(bool(got and got[0]))
            return real.evaluate(employee_id)

    engine.attach_lateness_escalator(CheckingEscalator())
    env.clock.now = datetime(2026, 10, 12, 9, 20)

    env.container.punch_service.punch_in(EMPLOYEE_ID, "12/10/2026 09:20")

    assert acquired_elsewhere == [True]


def test_concurrent_late_punches_on_two_days_do_not_deadlock(env):
    svc = env.container.punch_service
    errors = []

    def punch(day):
        try:
            svc.punch_in(EMPLOYEE_ID, f"{day}/10/2026 09:20")
        except Exception as exc:
            errors.append(exc)

    env.clock.now = datetime(2026, 10, 13, 9, 20)
    svc.punch_in(EMPLOYEE_ID, "9/10/2026 09:20")
    threads = [threading.Thread(target=punch, args=(day,)) for day in (12, 13)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert not any(t.is_alive() for t in threads)
    assert errors == []
    assert len(env.exceptions_of(TimeExceptionType.LATE)) == 3

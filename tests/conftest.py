from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time

import pytest

from attendance_engine.container import Container, wire_services
from attendance_engine.core.enums import AssignmentStatus, PunchPolicy
from attendance_engine.core.settings import EngineSettings
from attendance_engine.shifts.model import Shift, ShiftAssignment

from fakes import (
    Clock,
    FixedPayrollCalendar,
    InMemoryAttendance,
    InMemoryCorrections,
    InMemoryExceptions,
    InMemoryHolidays,
    InMemoryNotificationLog,
    InMemoryShifts,
    RecordingChannel,
)

EMPLOYEE_ID = 7
REVIEWER_ID = 100
# Monday
WORK_DAY = date(2026, 10, 12)


@dataclass
class Harness:
    container: Container
    attendance: InMemoryAttendance
    exceptions: InMemoryExceptions
    corrections: InMemoryCorrections
    shifts: InMemoryShifts
    holidays: InMemoryHolidays
    log: InMemoryNotificationLog
    channel: RecordingChannel
    payroll: FixedPayrollCalendar
    clock: Clock

    def exceptions_of(self, type, record_id=None):
        return [
            e
            for e in self.exceptions.all()
            if e.type == type and (record_id is None or e.attendance_record_id == record_id)
        ]


def office_shift(**overrides) -> Shift:
    values = dict(
        shift_id=1,
        shift_name="Office",
        start_time=time(9, 0),
        end_time=time(17, 0),
        grace_in_minutes=10,
        grace_out_minutes=0,
        punch_policy=PunchPolicy.FIRST_LAST,
    )
    values.update(overrides)
    return Shift(**values)


def build_harness(*, shift: Shift, settings: EngineSettings, log=None) -> Harness:
    attendance = InMemoryAttendance()
    exceptions = InMemoryExceptions()
    corrections = InMemoryCorrections()
    shifts = InMemoryShifts()
    holidays = InMemoryHolidays()
    log = log if log is not None else InMemoryNotificationLog()
    channel = RecordingChannel()
    payroll = FixedPayrollCalendar()
    clock = Clock(datetime.combine(WORK_DAY, time(8, 0)))

    shifts.add_shift(shift)
    shifts.assign(
        ShiftAssignment(
            assignment_id=1,
            employee_id=EMPLOYEE_ID,
            shift_id=shift.shift_id,
            status=AssignmentStatus.APPROVED,
            start_date=date(2026, 1, 1),
        )
    )

    container = wire_services(
        settings=settings,
        attendance_repo=attendance,
        exceptions_repo=exceptions,
        corrections_repo=corrections,
        shifts_repo=shifts,
        holidays=holidays,
        notification_log=log,
        payroll_calendar=payroll,
        channel=channel,
        clock=clock,
    )
    return Harness(container, attendance, exceptions, corrections, shifts, holidays, log, channel, payroll, clock)


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(hr_reviewer_ids=(REVIEWER_ID,))


@pytest.fixture
def env(settings) -> Harness:
    return build_harness(shift=office_shift(), settings=settings)


@pytest.fixture
def multiple_env(settings) -> Harness:
    return build_harness(shift=office_shift(punch_policy=PunchPolicy.MULTIPLE), settings=settings)

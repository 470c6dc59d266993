from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.recompute import RecomputeEngine
from .attendance.repository import AttendanceRepository
from .attendance.service import PunchService
from .attendance.strategies.factory import PunchPolicyFactory
from .breaks.service import BreakPermissionService
from .common.locks import RecordLocks
from .core.settings import EngineSettings
from .corrections.mysql_correction_repository import MySQLCorrectionRepository
from .corrections.repository import CorrectionRepository
from .corrections.service import CorrectionService
from .database.connection import DBConfig, DatabaseConnection
from .jobs.sweeps import MaintenanceSweeps
from .notifications.mysql_notification_log import MySQLNotificationLog
from .notifications.repository import NotificationChannel, NotificationLog
from .notifications.service import Notifier
from .payroll.calendar import MySQLPayrollCalendar, PayrollCalendar
from .payroll.service import PayrollReadinessService
from .shifts.mysql_shift_repository import MySQLHolidayCalendar, MySQLShiftRepository
from .shifts.repository import HolidayCalendar, ShiftRepository
from .shifts.resolver import ShiftWindowResolver
from .time_exceptions.lateness import RepeatedLatenessEscalator
from .time_exceptions.ledger import ExceptionLedger
from .time_exceptions.mysql_time_exception_repository import MySQLTimeExceptionRepository
from .time_exceptions.repository import TimeExceptionRepository
from .time_exceptions.service import TimeExceptionService


@dataclass(frozen=True)
class Container:
    settings: EngineSettings

    attendance_repo: AttendanceRepository
    exceptions_repo: TimeExceptionRepository
    corrections_repo: CorrectionRepository
    shifts_repo: ShiftRepository
    notification_log: NotificationLog

    resolver: ShiftWindowResolver
    notifier: Notifier
    recompute_engine: RecomputeEngine
    punch_service: PunchService
    time_exception_service: TimeExceptionService
    break_service: BreakPermissionService
    correction_service: CorrectionService
    lateness_escalator: RepeatedLatenessEscalator
    payroll_service: PayrollReadinessService
    sweeps: MaintenanceSweeps


def wire_services(
    *,
    settings: EngineSettings,
    attendance_repo: AttendanceRepository,
    exceptions_repo: TimeExceptionRepository,
    corrections_repo: CorrectionRepository,
    shifts_repo: ShiftRepository,
    holidays: HolidayCalendar,
    notification_log: NotificationLog,
    payroll_calendar: PayrollCalendar,
    channel: Optional[NotificationChannel] = None,
    clock=None,
) -> Container:
    """Build the service graph on top of any repository implementations."""

    clock_kw = {"clock": clock} if clock is not None else {}
    locks = RecordLocks()

    resolver = ShiftWindowResolver(shifts_repo, holidays)
    notifier = Notifier(notification_log, channel, **clock_kw)
    ledger = ExceptionLedger(exceptions_repo, **clock_kw)

    lateness = RepeatedLatenessEscalator(
        exceptions_repo, attendance_repo, shifts_repo, ledger, notifier, settings, locks=locks, **clock_kw
    )
    engine = RecomputeEngine(
        attendance_repo,
        exceptions_repo,
        corrections_repo,
        shifts_repo,
        resolver,
        ledger,
        notifier,
        locks=locks,
        lateness_escalator=lateness,
    )
    punch_service = PunchService(
        attendance_repo,
        exceptions_repo,
        resolver,
        engine,
        ledger,
        strategy_factory=PunchPolicyFactory(),
        locks=locks,
        **clock_kw,
    )

    return Container(
        settings=settings,
        attendance_repo=attendance_repo,
        exceptions_repo=exceptions_repo,
        corrections_repo=corrections_repo,
        shifts_repo=shifts_repo,
        notification_log=notification_log,
        resolver=resolver,
        notifier=notifier,
        recompute_engine=engine,
        punch_service=punch_service,
        time_exception_service=TimeExceptionService(
            exceptions_repo, attendance_repo, engine, ledger, notifier, **clock_kw
        ),
        break_service=BreakPermissionService(
            exceptions_repo, attendance_repo, engine, ledger, notifier, settings, **clock_kw
        ),
        correction_service=CorrectionService(
            corrections_repo, attendance_repo, exceptions_repo, engine, ledger, notifier, **clock_kw
        ),
        lateness_escalator=lateness,
        payroll_service=PayrollReadinessService(attendance_repo, engine),
        sweeps=MaintenanceSweeps(
            corrections_repo,
            exceptions_repo,
            shifts_repo,
            payroll_calendar,
            notifier,
            settings,
            locks=locks,
            **clock_kw,
        ),
    )


def build_container(*, db_config: dict, settings: Optional[EngineSettings] = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_mapping(db_config))
    return wire_services(
        settings=settings or EngineSettings(),
        attendance_repo=MySQLAttendanceRepository(conn),
        exceptions_repo=MySQLTimeExceptionRepository(conn),
        corrections_repo=MySQLCorrectionRepository(conn),
        shifts_repo=MySQLShiftRepository(conn),
        holidays=MySQLHolidayCalendar(conn),
        notification_log=MySQLNotificationLog(conn),
        payroll_calendar=MySQLPayrollCalendar(conn),
    )

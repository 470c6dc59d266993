from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Optional

from attendance_engine.attendance.model import AttendanceRecord, PunchSequence
from attendance_engine.core.exceptions import ConcurrencyError
from attendance_engine.shifts.model import LatenessRule, ScheduleRule, Shift, ShiftAssignment


class InMemoryAttendance:
    """Stores deep copies so callers must save() to persist, like the DB repo."""

    def __init__(self):
        self._records: dict[int, AttendanceRecord] = {}
        self._id = 0
        self.saves = 0

    def get_by_id(self, record_id: int) -> Optional[AttendanceRecord]:
        r = self._records.get(int(record_id))
        return copy.deepcopy(r) if r else None

    def get_for_employee_and_date(self, employee_id: int, work_date: date) -> Optional[AttendanceRecord]:
        for r in self._records.values():
            if r.employee_id == employee_id and r.work_date == work_date:
                return copy.deepcopy(r)
        return None

    def create(self, *, employee_id: int, work_date: date, punches=()) -> AttendanceRecord:
        self._id += 1
        rec = AttendanceRecord(
            record_id=self._id,
            employee_id=employee_id,
            work_date=work_date,
            punches=PunchSequence(punches),
        )
        self._records[rec.record_id] = rec
        return copy.deepcopy(rec)

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        current = self._records.get(record.record_id)
        if current is None or current.version != record.version:
            raise ConcurrencyError(f"Attendance record {record.record_id} was modified concurrently")
        record.version += 1
        self._records[record.record_id] = copy.deepcopy(record)
        self.saves += 1
        return record

    def list_for_employee(self, employee_id: int, *, start_date: date, end_date: date):
        items = [
            copy.deepcopy(r)
            for r in self._records.values()
            if r.employee_id == employee_id and start_date <= r.work_date <= end_date
        ]
        return sorted(items, key=lambda r: r.work_date)

    def list_between(self, *, start_date: date, end_date: date):
        items = [copy.deepcopy(r) for r in self._records.values() if start_date <= r.work_date <= end_date]
        return sorted(items, key=lambda r: (r.work_date, r.employee_id))


class InMemoryExceptions:
    def __init__(self):
        self._items: dict[int, object] = {}
        self._id = 0

    def add(self, exception):
        self._id += 1
        stored = replace(exception, exception_id=self._id)
        self._items[self._id] = stored
        return stored

    def get(self, exception_id: int):
        return self._items.get(int(exception_id))

    def update(self, exception):
        self._items[exception.exception_id] = exception
        return exception

    def delete(self, exception_id: int) -> bool:
        return self._items.pop(int(exception_id), None) is not None

    def list_for_record(self, record_id: int):
        return [e for e in self._items.values() if e.attendance_record_id == record_id]

    def list(self, *, employee_id=None, type=None, statuses=None, assigned_to=None, created_since=None):
        items = list(self._items.values())
        if employee_id is not None:
            items = [e for e in items if e.employee_id == employee_id]
        if type is not None:
            items = [e for e in items if e.type == type]
        if statuses:
            items = [e for e in items if e.status in statuses]
        if assigned_to is not None:
            items = [e for e in items if e.assigned_to == assigned_to]
        if created_since is not None:
            items = [e for e in items if e.created_at >= created_since]
        return sorted(items, key=lambda e: (e.created_at, e.exception_id))

    def all(self):
        return list(self._items.values())


class InMemoryCorrections:
    def __init__(self):
        self._items: dict[int, object] = {}
        self._adhoc: dict[int, object] = {}
        self._id = 0
        self._adhoc_id = 0

    def add(self, request):
        self._id += 1
        stored = replace(request, request_id=self._id)
        self._items[self._id] = stored
        return stored

    def get(self, request_id: int):
        return self._items.get(int(request_id))

    def update(self, request):
        self._items[request.request_id] = request
        return request

    def list_for_record(self, record_id: int):
        return [r for r in self._items.values() if r.attendance_record_id == record_id]

    def list(self, *, employee_id=None, statuses=None, created_before=None):
        items = list(self._items.values())
        if employee_id is not None:
            items = [r for r in items if r.employee_id == employee_id]
        if statuses:
            items = [r for r in items if r.status in statuses]
        if created_before is not None:
            items = [r for r in items if r.created_at <= created_before]
        return sorted(items, key=lambda r: (r.created_at, r.request_id), reverse=True)

    def add_adhoc(self, request):
        self._adhoc_id += 1
        stored = replace(request, request_id=self._adhoc_id)
        self._adhoc[self._adhoc_id] = stored
        return stored

    def update_adhoc(self, request):
        self._adhoc[request.request_id] = request
        return request

    def list_adhoc(self, *, employee_id=None, deadline_before=None):
        items = list(self._adhoc.values())
        if employee_id is not None:
            items = [r for r in items if r.employee_id == employee_id]
        if deadline_before is not None:
            items = [r for r in items if r.deadline is not None and r.deadline < deadline_before]
        return sorted(items, key=lambda r: r.request_id)

    def get_adhoc(self, request_id: int):
        return self._adhoc.get(int(request_id))


class InMemoryNotificationLog:
    def __init__(self):
        self.entries = []

    def add(self, notification):
        stored = replace(notification, notification_id=len(self.entries) + 1)
        self.entries.append(stored)
        return stored

    def exists(self, *, type, recipient_id=None, reference=None) -> bool:
        return any(
            n.type == type
            and (recipient_id is None or n.recipient_id == recipient_id)
            and (reference is None or n.reference == reference)
            for n in self.entries
        )

    def delete_matching(self, *, type, recipient_id, reference, since=None) -> int:
        def matches(n):
            return (
                n.type == type
                and n.recipient_id == recipient_id
                and n.reference == reference
                and (since is None or n.created_at >= since)
            )

        keep = [n for n in self.entries if not matches(n)]
        removed = len(self.entries) - len(keep)
        self.entries = keep
        return removed

    def list_for_recipient(self, recipient_id, *, limit=100):
        return [n for n in reversed(self.entries) if n.recipient_id == recipient_id][:limit]

    def of_type(self, type) -> list:
        kind = getattr(type, "value", type)
        return [n for n in self.entries if n.type == kind]


class FailingLog(InMemoryNotificationLog):
    def add(self, notification):
        raise RuntimeError("notification store unavailable")


@dataclass
class RecordingChannel:
    delivered: list = field(default_factory=list)

    def deliver(self, *, recipient_id, type, message):
        self.delivered.append((recipient_id, type, message))


@dataclass
class InMemoryShifts:
    shifts: dict = field(default_factory=dict)
    assignments: list = field(default_factory=list)
    schedule_rules: dict = field(default_factory=dict)
    lateness_rules: list = field(default_factory=list)
    overtime_approved: bool = False

    def add_shift(self, shift: Shift) -> Shift:
        self.shifts[shift.shift_id] = shift
        return shift

    def assign(self, assignment: ShiftAssignment) -> ShiftAssignment:
        self.assignments.append(assignment)
        return assignment

    def add_schedule_rule(self, rule: ScheduleRule) -> ScheduleRule:
        self.schedule_rules[rule.rule_id] = rule
        return rule

    def get_by_id(self, shift_id: int):
        return self.shifts.get(shift_id)

    def list_assignments_for_employee(self, employee_id: int):
        items = [a for a in self.assignments if a.employee_id == employee_id]
        return sorted(items, key=lambda a: (a.start_date, a.assignment_id), reverse=True)

    def list_assignments_ending_between(self, start: date, end: date):
        return [a for a in self.assignments if a.end_date is not None and start <= a.end_date <= end]

    def get_schedule_rule(self, rule_id: int):
        return self.schedule_rules.get(rule_id)

    def get_active_lateness_rule(self, name=None) -> Optional[LatenessRule]:
        for rule in self.lateness_rules:
            if rule.active and (name is None or rule.name == name):
                return rule
        return None

    def has_active_overtime_approval(self) -> bool:
        return self.overtime_approved


@dataclass
class InMemoryHolidays:
    days: set = field(default_factory=set)

    def is_holiday(self, day: date) -> bool:
        return day in self.days


@dataclass
class FixedPayrollCalendar:
    cutoff: Optional[date] = None

    def get_active_payroll_cutoff(self):
        return self.cutoff


class Clock:
    """Mutable clock passed as ``clock=`` to services."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

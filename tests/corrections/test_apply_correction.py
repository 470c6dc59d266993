from __future__ import annotations

from datetime import date, datetime, time

from attendance_engine.attendance.model import AttendanceRecord, Punch, PunchSequence
from attendance_engine.core.enums import CorrectionKind, PunchType
from attendance_engine.corrections.model import CorrectionDetail
from attendance_engine.corrections.service import apply_correction

DAY = date(2026, 10, 12)


def at(hh, mm=0):
    return datetime.combine(DAY, time(hh, mm))


def record(*punches):
    return AttendanceRecord(record_id=1, employee_id=7, work_date=DAY, punches=PunchSequence(punches))


def times(rec, punch_type):
    return [p.time for p in rec.punches.of_type(punch_type)]


def test_missing_punch_appends():
    rec = record(Punch(PunchType.IN, at(9)))

    apply_correction(rec, CorrectionDetail(CorrectionKind.MISSING_PUNCH_OUT, at(17)))

    assert times(rec, PunchType.OUT) == [at(17)]


SPLIT_DAY = (
    Punch(PunchType.IN, at(9)),
    Punch(PunchType.OUT, at(12)),
    Punch(PunchType.IN, at(13)),
    Punch(PunchType.OUT, at(17)),
)


def test_incorrect_replaces_punch_matching_recorded_time():
    rec = record(*SPLIT_DAY)

    apply_correction(rec, CorrectionDetail(CorrectionKind.INCORRECT_PUNCH_IN, at(8, 50), recorded_at=at(9)))

    assert times(rec, PunchType.IN) == [at(8, 50), at(13)]
    assert times(rec, PunchType.OUT) == [at(12), at(17)]


def test_incorrect_with_unchanged_time_keeps_punch():
    rec = record(Punch(PunchType.IN, at(9)), Punch(PunchType.OUT, at(17)))

    apply_correction(rec, CorrectionDetail(CorrectionKind.INCORRECT_PUNCH_IN, at(9), recorded_at=at(9)))

    assert times(rec, PunchType.IN) == [at(9)]
    assert len(rec.punches) == 2


def test_incorrect_falls_back_to_latest_of_type_when_recorded_time_is_gone():
    rec = record(*SPLIT_DAY)

    apply_correction(rec, CorrectionDetail(CorrectionKind.INCORRECT_PUNCH_OUT, at(17, 30), recorded_at=at(16)))

    assert times(rec, PunchType.OUT) == [at(12), at(17, 30)]


def test_incorrect_in_never_rewrites_an_out_punch():
    rec = record(Punch(PunchType.OUT, at(17)))

    apply_correction(rec, CorrectionDetail(CorrectionKind.INCORRECT_PUNCH_IN, at(17, 2), recorded_at=at(17)))

    assert times(rec, PunchType.IN) == [at(17, 2)]
    assert times(rec, PunchType.OUT) == [at(17)]


def test_incorrect_appends_when_nothing_matches():
    rec = record(Punch(PunchType.OUT, at(17)))

    apply_correction(rec, CorrectionDetail(CorrectionKind.INCORRECT_PUNCH_IN, at(9)))

    assert times(rec, PunchType.IN) == [at(9)]
    assert times(rec, PunchType.OUT) == [at(17)]

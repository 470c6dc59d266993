from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone


class PayrollCalendar(Protocol):
    def get_active_payroll_cutoff(self) -> Optional[date]:
        raise NotImplementedError


class MySQLPayrollCalendar(PayrollCalendar):
    """Reads the cutoff of the payroll run currently open for input."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_active_payroll_cutoff(self) -> Optional[date]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT cutoff_date
                FROM payroll_runs
                WHERE status='OPEN'
                ORDER BY cutoff_date
                LIMIT 1
                """
            )
            r = fetchone(cur)
            return r["cutoff_date"] if r else None

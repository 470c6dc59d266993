from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .sweeps import MaintenanceSweeps, SweepReport

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Runs the maintenance sweeps on cron triggers.

    All sweeps share one guard so two of them never overlap; a trigger that
    fires while another sweep is running is skipped.
    """

    def __init__(
        self,
        sweeps: MaintenanceSweeps,
        *,
        timezone: Optional[str] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self._sweeps = sweeps
        self._running = threading.Lock()
        job_defaults = {"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600}
        if scheduler is not None:
            self._scheduler = scheduler
        elif timezone:
            self._scheduler = BackgroundScheduler(timezone=timezone, job_defaults=job_defaults)
        else:
            self._scheduler = BackgroundScheduler(job_defaults=job_defaults)

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    def register_jobs(self) -> None:
        self._scheduler.add_job(
            self.run_correction_escalation, "cron", hour=2, minute=10,
            id="correction_escalation", replace_existing=True,
        )
        self._scheduler.add_job(
            self.run_cutoff_escalation, "cron", hour=8, minute=0,
            id="cutoff_escalation", replace_existing=True,
        )
        self._scheduler.add_job(
            self.run_shift_expiry, "cron", hour=10, minute=0,
            id="shift_expiry", replace_existing=True,
        )

    def start(self) -> None:
        self.register_jobs()
        try:
            self._scheduler.start()
        except Exception:
            logger.exception("Maintenance scheduler failed to start; continuing without scheduled sweeps")
            return
        logger.info("Maintenance scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def run_correction_escalation(self) -> List[SweepReport]:
        return self._guarded(
            "correction escalation",
            [self._sweeps.escalate_stale_corrections, self._sweeps.escalate_overdue_adhoc_requests],
        )

    def run_cutoff_escalation(self) -> List[SweepReport]:
        return self._guarded("pre-cutoff escalation", [self._sweeps.escalate_exceptions_before_cutoff])

    def run_shift_expiry(self) -> List[SweepReport]:
        return self._guarded("shift expiry", [self._sweeps.notify_expiring_shifts])

    def _guarded(self, name: str, sweeps: List[Callable[[], SweepReport]]) -> List[SweepReport]:
        if not self._running.acquire(blocking=False):
            logger.warning("Skipping %s: another maintenance sweep is still running", name)
            return []
        reports: List[SweepReport] = []
        try:
            for sweep in sweeps:
                try:
                    report = sweep()
                except Exception:
                    logger.exception("Maintenance sweep %s crashed", name)
                    continue
                reports.append(report)
                logger.info(
                    "Sweep %s: processed=%s skipped=%s failed=%s%s",
                    report.name, report.processed, report.skipped, report.failed,
                    f" ({report.note})" if report.note else "",
                )
        finally:
            self._running.release()
        return reports

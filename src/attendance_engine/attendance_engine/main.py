from __future__ import annotations

import importlib
import logging
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from config import get_settings_module

from .common.logging_config import configure_logging
from .container import Container, build_container
from .core.settings import EngineSettings
from .database.bootstrap import apply_schema, list_tables
from .jobs.scheduler import MaintenanceScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runtime:
    container: Container
    scheduler: Optional[MaintenanceScheduler]


def create_runtime(*, start_scheduler: Optional[bool] = None) -> Runtime:
    load_dotenv(override=False)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    db_config = getattr(settings, "DB_CONFIG")
    engine_settings = EngineSettings.from_mapping(getattr(settings, "ENGINE", {}))
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"), db_config.get("host"), db_config.get("port", 3306), db_config.get("database"),
    )

    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config)
        logger.info("Schema ready (tables=%s)", len(list_tables(db_config)))

    container = build_container(db_config=db_config, settings=engine_settings)

    if start_scheduler is None:
        start_scheduler = bool(getattr(settings, "SCHEDULER_ENABLED", True))
    scheduler = None
    if start_scheduler:
        scheduler = MaintenanceScheduler(container.sweeps, timezone=getattr(settings, "TIMEZONE", None))
        scheduler.start()

    return Runtime(container=container, scheduler=scheduler)


def main() -> None:
    runtime = create_runtime(start_scheduler=True)
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    logger.info("Attendance engine running; press Ctrl+C to stop")
    stop.wait()
    if runtime.scheduler is not None:
        runtime.scheduler.shutdown()


if __name__ == "__main__":
    main()

import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_db"),
}

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# Apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
SCHEDULER_ENABLED = bool(int(os.getenv("SCHEDULER_ENABLED", "1")))
TIMEZONE = os.getenv("TIMEZONE", "Asia/Ho_Chi_Minh")

# Reconciliation tunables; blank values fall back to EngineSettings defaults
ENGINE = {
    name: os.getenv(name, "")
    for name in (
        "CORRECTION_ESCALATION_DAYS",
        "BREAK_PERMISSION_MAX_MINUTES",
        "LATENESS_THRESHOLD_WINDOW_DAYS",
        "LATENESS_THRESHOLD_OCCURRENCES",
        "REPEATED_LATENESS_RULE_NAME",
        "TIME_EXCEPTION_ESCALATION_DAYS",
        "SHIFT_EXPIRY_NOTIFICATION_DAYS",
        "SYSTEM_USER_ID",
        "HR_REVIEWER_IDS",
    )
}

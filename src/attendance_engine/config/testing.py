import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", "12345"),
    "database": os.getenv("DB_NAME", "attendance_test_db"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
SCHEDULER_ENABLED = False
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

"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

PUNCH_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M"
CORRECTION_DATE_FORMAT = "%d/%m/%Y"
CORRECTION_TIME_FORMAT = "%H:%M"

DEFAULT_CORRECTION_ESCALATION_DAYS = 7
DEFAULT_BREAK_MAX_MINUTES = 180
DEFAULT_LATENESS_WINDOW_DAYS = 90
DEFAULT_LATENESS_THRESHOLD = 3
DEFAULT_REPEATED_LATENESS_RULE = "REPEATED_LATENESS"
DEFAULT_EXCEPTION_ESCALATION_DAYS = 2
DEFAULT_SHIFT_EXPIRY_NOTICE_DAYS = 7

REDUNDANT_CORRECTION_TOLERANCE_MINUTES = 1
CORRECTION_FUZZY_MATCH_MINUTES = 2

REPEATED_LATENESS_MARKER = "REPEATED_LATENESS_ESCALATION"
ESCALATION_MARKER_SUFFIX = "_ESCALATED"

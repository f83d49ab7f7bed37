"""
Constants
Centralised storage for repair defaults, placeholder texts and view settings.
"""
DEFAULT_AVERAGE_SCORE = 5.0
DEFAULT_NUMERIC = 0.0

PROTOCOL_NOT_RETURNED_NOTE = (
    "Protocol audit was not returned by the audit engine. "
    "All checks default to WARNING pending manual review."
)

SYNTHETIC_RATING = "N/A"
SYNTHETIC_BLOCKER = "Platform status not returned"
SYNTHETIC_RECOVERY = "Manual verification required for {platform}"

DEFAULT_SOURCE_TITLE = "Source"

CATEGORY_ALL = "All"
TARGET_LABEL_PREFIX = "[TARGET]"
RATING_AXIS_MAX = 5.0
MIN_BAR_PERCENT = 2.0

MIN_HOTEL_NAME_LENGTH = 3
MIN_CITY_LENGTH = 2

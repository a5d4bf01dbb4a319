"""
Constants for the Match Fee Allocation Engine.

This module contains configuration constants used throughout the application.
"""

# Application metadata
APP_TITLE = "Match Fee Allocation Engine"

# Attendance grid shape: 3 sections x 3 parts per match
SECTIONS = (1, 2, 3)
PARTS = (1, 2, 3)
VALID_ATTENDANCE_VALUES = (0, 0.5, 1)

# Nominal capacity used for the coefficient: 9 slots x 10 players
PLAYERS_PER_SLOT = 10
FIXED_TOTAL_TIME_UNITS = len(SECTIONS) * len(PARTS) * PLAYERS_PER_SLOT

# Global default rates (overridable per match and via system config)
DEFAULT_VIDEO_FEE_RATE = 2.0
DEFAULT_LATE_FEE_RATE = 10.0

VIDEO_FEE_RATE_KEY = "VIDEO_FEE_RATE"
LATE_FEE_RATE_KEY = "LATE_FEE_RATE"
DEFAULT_SETTINGS = {
    VIDEO_FEE_RATE_KEY: str(DEFAULT_VIDEO_FEE_RATE),
    LATE_FEE_RATE_KEY: str(DEFAULT_LATE_FEE_RATE),
}
LEGACY_SETTING_KEYS = {
    "base_video_fee_rate": VIDEO_FEE_RATE_KEY,
    "base_late_fee_rate": LATE_FEE_RATE_KEY,
}
SETTINGS_CACHE_TTL_SECONDS = 5 * 60

# Persistence
DEFAULT_DATABASE_URL = "sqlite:///matchfees.db"
TRANSACTION_TIMEOUT_SECONDS = 5.0

# Override sanity thresholds (currency units)
OVERRIDE_WARNING_LIMITS = {
    "field_fee_override": 1000,
    "video_fee_override": 100,
    "late_fee_override": 50,
}
LARGE_OVERRIDE_LIMITS = {
    "field_fee_override": 200,
    "video_fee_override": 20,
    "late_fee_override": 20,
}
MIN_JUSTIFICATION_LENGTH = 10
MAX_NOTES_LENGTH = 500

# Match events
EVENT_TYPES = (
    "GOAL",
    "ASSIST",
    "YELLOW_CARD",
    "RED_CARD",
    "PENALTY_GOAL",
    "PENALTY_MISS",
    "OWN_GOAL",
    "SAVE",
)
GOAL_EVENT_TYPES = ("GOAL", "PENALTY_GOAL")
ASSIST_EVENT_TYPES = ("ASSIST",)

# Web server defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7122

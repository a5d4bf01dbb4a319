"""
Utilities package for the Match Fee Allocation Engine.

This package contains helpers, constants and configuration used throughout the application.
"""
from .money_utils import round_fee, rounded_total, format_coefficient
from .constants import (
    APP_TITLE, SECTIONS, PARTS, VALID_ATTENDANCE_VALUES, FIXED_TOTAL_TIME_UNITS,
    DEFAULT_VIDEO_FEE_RATE, DEFAULT_LATE_FEE_RATE, EVENT_TYPES
)
from .config import AppConfig
from .logging_config import setup_logging

__all__ = [
    "round_fee", "rounded_total", "format_coefficient",
    "APP_TITLE", "SECTIONS", "PARTS", "VALID_ATTENDANCE_VALUES", "FIXED_TOTAL_TIME_UNITS",
    "DEFAULT_VIDEO_FEE_RATE", "DEFAULT_LATE_FEE_RATE", "EVENT_TYPES",
    "AppConfig", "setup_logging"
]

"""
Match Fee Allocation Engine

Allocates shared match costs (field rental, water) across players in
proportion to the time they played, layers manual per-player overrides on
top, and keeps goalkeeper slots exclusive within a match.

This package provides the fee services and a Flask JSON API.
"""
from .models import PlayerAttendance, FeeOverride, MatchFeeBreakdown
from .services import (
    AttendanceService, FeeCalculationService, FeeOverrideService, ServiceFactory,
    calculate_coefficient, calculate_player_fees
)
from .ui import create_app, run_web_app
from .utils import AppConfig, round_fee, APP_TITLE

__version__ = "1.0.0"
__author__ = "Match Fees Development Team"

__all__ = [
    "PlayerAttendance", "FeeOverride", "MatchFeeBreakdown",
    "AttendanceService", "FeeCalculationService", "FeeOverrideService", "ServiceFactory",
    "calculate_coefficient", "calculate_player_fees",
    "create_app", "run_web_app", "AppConfig", "round_fee", "APP_TITLE"
]

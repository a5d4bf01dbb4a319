"""
Services package for the Match Fee Allocation Engine.

This package contains service classes that handle business logic.
Includes factory for proper dependency injection.
"""
from .exceptions import (
    FeeEngineError, ValidationError, NotFoundError, ConflictError, PersistenceTimeoutError
)
from .fee_formula import calculate_coefficient, calculate_player_fees, validate_fees, validate_match_costs
from .attendance_validator import (
    AttendanceValidationService, AttendanceValidationResult, GoalkeeperConflict,
    resolve_goalkeeper_conflicts
)
from .persistence_service import PersistenceService
from .settings_service import SettingsService
from .fee_calculation_service import FeeCalculationService
from .fee_override_service import FeeOverrideService
from .attendance_service import AttendanceService
from .service_factory import ServiceFactory

__all__ = [
    "FeeEngineError", "ValidationError", "NotFoundError", "ConflictError",
    "PersistenceTimeoutError",
    "calculate_coefficient", "calculate_player_fees", "validate_fees", "validate_match_costs",
    "AttendanceValidationService", "AttendanceValidationResult", "GoalkeeperConflict",
    "resolve_goalkeeper_conflicts",
    "PersistenceService", "SettingsService", "FeeCalculationService", "FeeOverrideService",
    "AttendanceService", "ServiceFactory"
]

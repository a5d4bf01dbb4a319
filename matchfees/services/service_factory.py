"""
Service Factory for dependency injection.

This module provides a factory for creating properly configured service instances
with their dependencies injected. One factory owns one database and one settings cache.
"""
from typing import Optional

from ..utils.config import AppConfig
from .attendance_service import AttendanceService
from .attendance_validator import AttendanceValidationService
from .fee_calculation_service import FeeCalculationService
from .fee_override_service import FeeOverrideService
from .persistence_service import PersistenceService
from .settings_service import SettingsService, database_settings_loader


class ServiceFactory:
    """
    Factory for creating service instances with proper dependency injection.

    Shared collaborators (persistence, settings) are created lazily once and
    reused by every service this factory builds.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        """Initialize factory with a configuration (environment by default)."""
        self.config = config or AppConfig.from_env()
        self._persistence_service: Optional[PersistenceService] = None
        self._settings_service: Optional[SettingsService] = None
        self._validation_service: Optional[AttendanceValidationService] = None
        self._fee_calculation_service: Optional[FeeCalculationService] = None

    def create_fee_calculation_service(self) -> FeeCalculationService:
        """Get the fee calculation service."""
        if self._fee_calculation_service is None:
            self._fee_calculation_service = FeeCalculationService(
                persistence_service=self.get_persistence_service(),
                settings_service=self.get_settings_service()
            )
        return self._fee_calculation_service

    def create_fee_override_service(self) -> FeeOverrideService:
        """
        Create FeeOverrideService with injected dependencies.

        Returns:
            Configured FeeOverrideService instance
        """
        return FeeOverrideService(
            fee_calculation_service=self.create_fee_calculation_service(),
            persistence_service=self.get_persistence_service()
        )

    def create_attendance_service(
        self,
        custom_validator: Optional[AttendanceValidationService] = None
    ) -> AttendanceService:
        """
        Create AttendanceService with injected dependencies.

        Args:
            custom_validator: Optional custom validation service

        Returns:
            Configured AttendanceService instance
        """
        return AttendanceService(
            persistence_service=self.get_persistence_service(),
            settings_service=self.get_settings_service(),
            validation_service=custom_validator or self._get_validation_service(),
            fee_calculation_service=self.create_fee_calculation_service()
        )

    def create_complete_service_suite(self) -> dict:
        """
        Create a complete suite of services with proper dependencies.

        Returns:
            Dictionary containing all configured services
        """
        return {
            'attendance': self.create_attendance_service(),
            'fees': self.create_fee_calculation_service(),
            'overrides': self.create_fee_override_service(),
            'settings': self.get_settings_service(),
            'persistence': self.get_persistence_service()
        }

    def get_persistence_service(self) -> PersistenceService:
        """Get singleton persistence service, creating the schema on first use."""
        if self._persistence_service is None:
            self._persistence_service = PersistenceService(
                database_url=self.config.database_url,
                transaction_timeout=self.config.transaction_timeout_seconds
            )
            self._persistence_service.create_schema()
        return self._persistence_service

    def get_settings_service(self) -> SettingsService:
        """Get singleton settings service."""
        if self._settings_service is None:
            self._settings_service = SettingsService(
                loader=database_settings_loader(self.get_persistence_service()),
                ttl_seconds=self.config.settings_cache_ttl_seconds
            )
        return self._settings_service

    def _get_validation_service(self) -> AttendanceValidationService:
        if self._validation_service is None:
            self._validation_service = AttendanceValidationService()
        return self._validation_service

    def configure_persistence_service(self, persistence_service: PersistenceService) -> None:
        """Use an existing persistence service (e.g. an in-memory database in tests)."""
        self._persistence_service = persistence_service
        self._settings_service = None
        self._fee_calculation_service = None

    def configure_settings_service(self, settings_service: SettingsService) -> None:
        """Use a custom settings service."""
        self._settings_service = settings_service
        self._fee_calculation_service = None

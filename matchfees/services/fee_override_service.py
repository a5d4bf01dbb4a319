"""
Fee override service for the Match Fee Allocation Engine.

This module validates manual fee overrides, applies them singly or in bulk,
copies them between matches and reports on them.
"""
import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select

from ..models import (
    BulkItemError, BulkOverrideResult, CopyOverridesResult, FeeOverride, FeeOverrideRecord,
    OverrideHistoryEntry, OverrideStatistics, OverrideValidationResult, ParticipationRecord,
    PlayerFeeBreakdown
)
from ..utils.constants import (
    LARGE_OVERRIDE_LIMITS, MAX_NOTES_LENGTH, MIN_JUSTIFICATION_LENGTH, OVERRIDE_WARNING_LIMITS
)
from .exceptions import FeeEngineError, ValidationError
from .fee_calculation_service import FeeCalculationService
from .persistence_service import PersistenceService

logger = logging.getLogger(__name__)

_COMPONENT_LABELS = {
    "field_fee_override": "Field fee override",
    "video_fee_override": "Video fee override",
    "late_fee_override": "Late fee override",
}


class FeeOverrideService:
    """
    Service for manual fee overrides.

    Single operations raise FeeEngineError subclasses; bulk operations are
    best effort and report per-item failures without rolling back successes.
    """

    def __init__(self, fee_calculation_service: FeeCalculationService, persistence_service: PersistenceService):
        self.fee_calculation = fee_calculation_service
        self.persistence = persistence_service

    @staticmethod
    def validate_override(override: FeeOverride) -> OverrideValidationResult:
        """
        Validate override values and notes.

        Negative or non-finite values and overly long notes are errors; unusually high values
        and large overrides without a justification are warnings.

        Args:
            override: Override to check

        Returns:
            OverrideValidationResult
        """
        errors: List[str] = []
        warnings: List[str] = []

        for component, label in _COMPONENT_LABELS.items():
            value = getattr(override, component)
            if value is None:
                continue
            if not math.isfinite(value):
                errors.append(f"{label} must be a finite number")
            elif value < 0:
                errors.append(f"{label} cannot be negative")
            elif value > OVERRIDE_WARNING_LIMITS[component]:
                warnings.append(f"{label} is unusually high (>{OVERRIDE_WARNING_LIMITS[component]})")

        if override.notes is not None and len(override.notes) > MAX_NOTES_LENGTH:
            errors.append(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")

        has_large_override = any(
            getattr(override, component) is not None and getattr(override, component) > limit
            for component, limit in LARGE_OVERRIDE_LIMITS.items()
        )
        notes = (override.notes or "").strip()
        if has_large_override and len(notes) < MIN_JUSTIFICATION_LENGTH:
            warnings.append("Large overrides should include justification notes")

        return OverrideValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def apply_override(self, match_id: str, player_id: str, override: FeeOverride) -> PlayerFeeBreakdown:
        """
        Validate and apply an override.

        Returns:
            The player's breakdown with validation warnings attached

        Raises:
            ValidationError: Invalid override values or notes
            NotFoundError: The player has no participation in the match
        """
        validation = self.validate_override(override)
        if not validation.is_valid:
            raise ValidationError("Invalid fee override", details=validation.errors)
        for warning in validation.warnings:
            logger.warning("Override for player %s in match %s: %s", player_id, match_id, warning)

        breakdown = self.fee_calculation.apply_manual_override(match_id, player_id, override)
        breakdown.warnings = list(validation.warnings)
        return breakdown

    def apply_bulk_overrides(
        self,
        match_id: str,
        items: Iterable[Tuple[str, FeeOverride]]
    ) -> BulkOverrideResult:
        """
        Apply several overrides, continuing past individual failures.

        Args:
            match_id: Match identifier
            items: (player_id, override) pairs

        Returns:
            BulkOverrideResult listing successes and per-player errors
        """
        result = BulkOverrideResult()
        for player_id, override in items:
            try:
                result.results.append(self.apply_override(match_id, player_id, override))
            except FeeEngineError as e:
                result.errors.append(BulkItemError(player_id=player_id, error=e.message, code=e.code))
        logger.info(
            "Bulk override for match %s: %d applied, %d failed",
            match_id, len(result.results), len(result.errors)
        )
        return result

    def remove_override(self, match_id: str, player_id: str) -> PlayerFeeBreakdown:
        """
        Remove a player's override.

        Raises:
            NotFoundError: The player has no participation in the match
        """
        return self.fee_calculation.remove_override(match_id, player_id)

    def remove_bulk_overrides(self, match_id: str, player_ids: Iterable[str]) -> BulkOverrideResult:
        """Remove several overrides, continuing past individual failures."""
        result = BulkOverrideResult()
        for player_id in player_ids:
            try:
                result.results.append(self.remove_override(match_id, player_id))
            except FeeEngineError as e:
                result.errors.append(BulkItemError(player_id=player_id, error=e.message, code=e.code))
        logger.info(
            "Bulk override removal for match %s: %d removed, %d failed",
            match_id, len(result.results), len(result.errors)
        )
        return result

    def get_override_history(self, match_id: str) -> List[OverrideHistoryEntry]:
        """Overrides of a match, most recently updated first."""
        with self.persistence.session_scope() as session:
            self.persistence.get_match(session, match_id)
            records = session.execute(
                select(FeeOverrideRecord)
                .where(FeeOverrideRecord.match_id == match_id)
                .order_by(FeeOverrideRecord.updated_at.desc(), FeeOverrideRecord.id.desc())
            ).scalars().all()
            return [self._history_entry(record) for record in records]

    def get_player_override_history(self, player_id: str) -> List[OverrideHistoryEntry]:
        """Overrides of a player across matches, most recently updated first."""
        with self.persistence.session_scope() as session:
            self.persistence.get_player(session, player_id)
            records = session.execute(
                select(FeeOverrideRecord)
                .where(FeeOverrideRecord.player_id == player_id)
                .order_by(FeeOverrideRecord.updated_at.desc(), FeeOverrideRecord.id.desc())
            ).scalars().all()
            return [self._history_entry(record) for record in records]

    def copy_overrides_from_match(
        self,
        source_match_id: str,
        target_match_id: str,
        player_mapping: Optional[Mapping[str, str]] = None
    ) -> CopyOverridesResult:
        """
        Copy every override of one match onto another.

        Args:
            source_match_id: Match to copy from
            target_match_id: Match to copy onto
            player_mapping: Optional source player id -> target player id

        Returns:
            CopyOverridesResult; players without a participation in the
            target match are skipped and reported

        Raises:
            NotFoundError: Unknown target match
        """
        player_mapping = player_mapping or {}
        with self.persistence.session_scope() as session:
            self.persistence.get_match(session, target_match_id)
            sources = session.execute(
                select(FeeOverrideRecord)
                .where(FeeOverrideRecord.match_id == source_match_id)
                .order_by(FeeOverrideRecord.id)
            ).scalars().all()
            targets_with_participation = set(session.execute(
                select(ParticipationRecord.player_id)
                .where(ParticipationRecord.match_id == target_match_id)
            ).scalars().all())
            # detach the values before leaving the session
            pending = [
                (
                    record.player_id,
                    record.player.name if record.player is not None else record.player_id,
                    FeeOverride(
                        field_fee_override=record.field_fee_override,
                        video_fee_override=record.video_fee_override,
                        late_fee_override=record.late_fee_override,
                        notes=f"Copied from match {source_match_id}: {record.notes or ''}"[:MAX_NOTES_LENGTH],
                    ),
                )
                for record in sources
            ]

        result = CopyOverridesResult()
        if not pending:
            result.errors.append("No overrides found in source match")
            return result

        for source_player_id, player_name, override in pending:
            target_player_id = player_mapping.get(source_player_id, source_player_id)
            if target_player_id not in targets_with_participation:
                result.skipped_count += 1
                result.errors.append(f"Player {player_name} not found in target match")
                continue
            validation = self.validate_override(override)
            if not validation.is_valid:
                result.skipped_count += 1
                result.errors.append(f"Failed to copy override for {player_name}: {'; '.join(validation.errors)}")
                continue
            try:
                self.fee_calculation.apply_manual_override(target_match_id, target_player_id, override)
            except FeeEngineError as e:
                result.skipped_count += 1
                result.errors.append(f"Failed to copy override for {player_name}: {e.message}")
                continue
            result.copied_count += 1

        logger.info(
            "Copied overrides from match %s to %s: %d copied, %d skipped",
            source_match_id, target_match_id, result.copied_count, result.skipped_count
        )
        return result

    def get_override_statistics(self, match_id: str) -> OverrideStatistics:
        """
        Summarize overrides of a match.

        Raises:
            NotFoundError: Unknown match
        """
        breakdown = self.fee_calculation.get_fee_breakdown(match_id)
        overridden = [player for player in breakdown.players if player.overrides is not None]
        counts: Dict[str, int] = {component: 0 for component in _COMPONENT_LABELS}
        for player in overridden:
            for component in counts:
                if getattr(player.overrides, component) is not None:
                    counts[component] += 1

        total_players = breakdown.total_participants
        percentage = (len(overridden) / total_players * 100) if total_players else 0.0
        return OverrideStatistics(
            total_players=total_players,
            players_with_overrides=len(overridden),
            override_percentage=percentage,
            total_calculated_fees=breakdown.total_calculated_fees,
            total_final_fees=breakdown.total_final_fees,
            fee_difference=breakdown.total_final_fees - breakdown.total_calculated_fees,
            field_fee_overrides=counts["field_fee_override"],
            video_fee_overrides=counts["video_fee_override"],
            late_fee_overrides=counts["late_fee_override"],
        )

    @staticmethod
    def _history_entry(record: FeeOverrideRecord) -> OverrideHistoryEntry:
        return OverrideHistoryEntry(
            id=record.id,
            match_id=record.match_id,
            player_id=record.player_id,
            player_name=record.player.name if record.player is not None else f"Player-{record.player_id}",
            field_fee_override=record.field_fee_override,
            video_fee_override=record.video_fee_override,
            late_fee_override=record.late_fee_override,
            notes=record.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

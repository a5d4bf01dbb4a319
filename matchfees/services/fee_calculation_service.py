"""
Fee calculation service for the Match Fee Allocation Engine.

This module recalculates base fees from stored attendance, merges them with
stored manual overrides, and persists the calculated components. Overrides
are never modified by a recalculation.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import (
    FeeCalculationResult, FeeOverride, FeeOverrideRecord, FinalFees, MatchFeeBreakdown,
    MatchRecord, ParticipationRecord, PlayerAttendance, PlayerFeeBreakdown
)
from ..utils.money_utils import format_coefficient, round_fee
from .exceptions import NotFoundError, ValidationError
from .fee_formula import (
    calculate_coefficient, calculate_player_fees, count_sections_with_normal_play, validate_match_costs
)
from .persistence_service import PersistenceService
from .settings_service import SettingsService

logger = logging.getLogger(__name__)


def rounded_calculation(calculated: FeeCalculationResult) -> FeeCalculationResult:
    """Copy of a calculation with every component rounded and the total re-summed."""
    field_fee = round_fee(calculated.field_fee)
    video_fee = round_fee(calculated.video_fee)
    late_fee = round_fee(calculated.late_fee)
    return FeeCalculationResult(
        normal_player_parts=calculated.normal_player_parts,
        sections_with_normal_play=calculated.sections_with_normal_play,
        field_fee=field_fee,
        video_fee=video_fee,
        late_fee=late_fee,
        total_fee=field_fee + video_fee + late_fee,
    )


def override_from_record(record: Optional[FeeOverrideRecord]) -> Optional[FeeOverride]:
    if record is None:
        return None
    return FeeOverride(
        field_fee_override=record.field_fee_override,
        video_fee_override=record.video_fee_override,
        late_fee_override=record.late_fee_override,
        notes=record.notes,
    )


class FeeCalculationService:
    """
    Service for override-aware fee calculation.

    Stored participation fee columns always hold rounded calculated values;
    final fees are derived on read as override if present, else calculated.
    """

    def __init__(self, persistence_service: PersistenceService, settings_service: SettingsService):
        self.persistence = persistence_service
        self.settings = settings_service

    def match_rates(self, match: MatchRecord) -> Tuple[float, float]:
        """
        Effective (late_fee_rate, video_fee_rate) of a match.

        A NULL match rate falls back to the global setting.
        """
        late_fee_rate = match.late_fee_rate
        if late_fee_rate is None:
            late_fee_rate = self.settings.get_late_fee_rate()
        video_fee_rate = match.video_fee_per_unit
        if video_fee_rate is None:
            video_fee_rate = self.settings.get_video_fee_rate()
        return float(late_fee_rate), float(video_fee_rate)

    def calculate_player_fees(
        self,
        match_id: str,
        player_id: str,
        grid: PlayerAttendance,
        is_late_arrival: Optional[bool] = None
    ) -> PlayerFeeBreakdown:
        """
        Calculate one player's fees for a grid against a match's costs without saving.

        The player's stored override, if any, is merged into the final fees.

        Args:
            match_id: Match whose costs and rates apply
            player_id: Player the grid belongs to
            grid: Attendance grid
            is_late_arrival: Defaults to the grid's own flag

        Returns:
            PlayerFeeBreakdown with rounded calculated fees

        Raises:
            NotFoundError: Unknown match or player
        """
        with self.persistence.session_scope() as session:
            match = self.persistence.get_match(session, match_id)
            player_name = self.persistence.get_player(session, player_id).name
            coefficient = calculate_coefficient(match.field_fee_total, match.water_fee_total)
            late_fee_rate, video_fee_rate = self.match_rates(match)
            override = override_from_record(self._get_override(session, match_id, player_id))

        if is_late_arrival is None:
            is_late_arrival = bool(grid.is_late_arrival)
        calculated = rounded_calculation(
            calculate_player_fees(grid, is_late_arrival, coefficient, late_fee_rate, video_fee_rate)
        )
        return PlayerFeeBreakdown(
            player_id=player_id,
            player_name=player_name,
            total_time=calculated.normal_player_parts,
            is_late_arrival=is_late_arrival,
            calculated_fees=calculated,
            overrides=override,
            final_fees=FinalFees.merge(calculated, override),
        )

    def recalculate_all_fees(self, match_id: str) -> MatchFeeBreakdown:
        """
        Recalculate every participation of a match and merge stored overrides.

        Calculated components are written back to the participation rows;
        override rows are read but never changed.

        Raises:
            NotFoundError: Unknown match
        """
        with self.persistence.transaction() as session:
            match = self.persistence.get_match(session, match_id, lock=True)
            coefficient, players = self._recalculate(session, match)

        breakdown = self._match_breakdown(match_id, coefficient, players)
        logger.info(
            "Recalculated fees for match %s: %d players, calculated %d, final %d",
            match_id, breakdown.total_participants,
            breakdown.total_calculated_fees, breakdown.total_final_fees
        )
        return breakdown

    def get_fee_breakdown(self, match_id: str) -> MatchFeeBreakdown:
        """
        Assemble the fee breakdown from persisted values without recalculating.

        Raises:
            NotFoundError: Unknown match
        """
        with self.persistence.session_scope() as session:
            match = self.persistence.get_match(session, match_id)
            coefficient = calculate_coefficient(match.field_fee_total, match.water_fee_total)
            overrides = self._overrides_by_player(session, match_id)
            players = [
                self._player_breakdown(
                    participation,
                    self._persisted_calculation(participation),
                    override_from_record(overrides.get(participation.player_id))
                )
                for participation in self._participations(session, match_id)
            ]
        return self._match_breakdown(match_id, coefficient, players)

    def apply_manual_override(
        self,
        match_id: str,
        player_id: str,
        override: FeeOverride
    ) -> PlayerFeeBreakdown:
        """
        Create or replace the override of a player in a match.

        All three components and the notes are replaced; a None component
        means the calculated value applies. Participation rows are not touched.

        Raises:
            NotFoundError: The player has no participation in the match
        """
        with self.persistence.session_scope() as session:
            self.persistence.get_match(session, match_id)
            participation = self._get_participation(session, match_id, player_id)

            record = self._get_override(session, match_id, player_id)
            if record is None:
                record = FeeOverrideRecord(match_id=match_id, player_id=player_id)
                session.add(record)
            record.field_fee_override = override.field_fee_override
            record.video_fee_override = override.video_fee_override
            record.late_fee_override = override.late_fee_override
            record.notes = override.notes
            session.flush()

            breakdown = self._player_breakdown(
                participation, self._persisted_calculation(participation), override_from_record(record)
            )

        logger.info(
            "Applied fee override for player %s in match %s: field=%s video=%s late=%s",
            player_id, match_id, override.field_fee_override,
            override.video_fee_override, override.late_fee_override
        )
        return breakdown

    def remove_override(self, match_id: str, player_id: str) -> PlayerFeeBreakdown:
        """
        Delete a player's override and refresh their calculated fees.

        Raises:
            NotFoundError: The player has no participation in the match
        """
        with self.persistence.transaction() as session:
            match = self.persistence.get_match(session, match_id)
            participation = self._get_participation(session, match_id, player_id)

            record = self._get_override(session, match_id, player_id)
            if record is not None:
                session.delete(record)

            coefficient = calculate_coefficient(match.field_fee_total, match.water_fee_total)
            late_fee_rate, video_fee_rate = self.match_rates(match)
            calculated = rounded_calculation(calculate_player_fees(
                PlayerAttendance.from_dict(participation.attendance_data),
                bool(participation.is_late_arrival), coefficient, late_fee_rate, video_fee_rate
            ))
            self._store_calculation(participation, calculated)
            breakdown = self._player_breakdown(participation, calculated, None)

        logger.info("Removed fee override for player %s in match %s", player_id, match_id)
        return breakdown

    def update_match_costs(
        self,
        match_id: str,
        field_fee_total: Optional[float] = None,
        water_fee_total: Optional[float] = None,
        late_fee_rate: Optional[float] = None,
        video_fee_per_unit: Optional[float] = None
    ) -> MatchFeeBreakdown:
        """
        Update a match's cost inputs and recalculate fees if anything changed.

        The cost update and the recalculation share one transaction, so a
        failed recalculation leaves the stored costs unchanged.

        Args:
            match_id: Match identifier
            field_fee_total: New field rental total
            water_fee_total: New water total
            late_fee_rate: New per-match late fee
            video_fee_per_unit: New per-section video fee

        Returns:
            The match fee breakdown after the update

        Raises:
            ValidationError: Negative or non-finite values
            NotFoundError: Unknown match
        """
        errors = validate_match_costs(field_fee_total, water_fee_total, late_fee_rate, video_fee_per_unit)
        if errors:
            raise ValidationError("Invalid match costs", details=errors)

        changes = {
            "field_fee_total": field_fee_total,
            "water_fee_total": water_fee_total,
            "late_fee_rate": late_fee_rate,
            "video_fee_per_unit": video_fee_per_unit,
        }
        changed = False
        with self.persistence.transaction() as session:
            match = self.persistence.get_match(session, match_id, lock=True)
            for column, value in changes.items():
                if value is not None and getattr(match, column) != value:
                    setattr(match, column, value)
                    changed = True
            if changed:
                coefficient, players = self._recalculate(session, match)

        if not changed:
            return self.get_fee_breakdown(match_id)
        breakdown = self._match_breakdown(match_id, coefficient, players)
        logger.info(
            "Updated costs of match %s: coefficient %s, final %d",
            match_id, format_coefficient(coefficient), breakdown.total_final_fees
        )
        return breakdown

    # Helpers

    def _recalculate(self, session: Session, match: MatchRecord) -> Tuple[float, List[PlayerFeeBreakdown]]:
        """Recompute and store every participation of a loaded match."""
        coefficient = calculate_coefficient(match.field_fee_total, match.water_fee_total)
        late_fee_rate, video_fee_rate = self.match_rates(match)
        overrides = self._overrides_by_player(session, match.id)

        players = []
        for participation in self._participations(session, match.id):
            grid = PlayerAttendance.from_dict(participation.attendance_data)
            calculated = rounded_calculation(calculate_player_fees(
                grid, bool(participation.is_late_arrival), coefficient,
                late_fee_rate, video_fee_rate
            ))
            self._store_calculation(participation, calculated)
            players.append(self._player_breakdown(
                participation, calculated, override_from_record(overrides.get(participation.player_id))
            ))
        return coefficient, players

    @staticmethod
    def _participations(session: Session, match_id: str) -> List[ParticipationRecord]:
        return list(session.execute(
            select(ParticipationRecord)
            .where(ParticipationRecord.match_id == match_id)
            .order_by(ParticipationRecord.id)
        ).scalars().all())

    @staticmethod
    def _get_participation(session: Session, match_id: str, player_id: str) -> ParticipationRecord:
        participation = session.execute(
            select(ParticipationRecord).where(
                ParticipationRecord.match_id == match_id,
                ParticipationRecord.player_id == player_id
            )
        ).scalar_one_or_none()
        if participation is None:
            raise NotFoundError(f"Player {player_id} has no participation in match {match_id}")
        return participation

    @staticmethod
    def _get_override(session: Session, match_id: str, player_id: str) -> Optional[FeeOverrideRecord]:
        return session.execute(
            select(FeeOverrideRecord).where(
                FeeOverrideRecord.match_id == match_id,
                FeeOverrideRecord.player_id == player_id
            )
        ).scalar_one_or_none()

    @staticmethod
    def _overrides_by_player(session: Session, match_id: str) -> Dict[str, FeeOverrideRecord]:
        records = session.execute(
            select(FeeOverrideRecord).where(FeeOverrideRecord.match_id == match_id)
        ).scalars().all()
        return {record.player_id: record for record in records}

    @staticmethod
    def _store_calculation(participation: ParticipationRecord, calculated: FeeCalculationResult) -> None:
        participation.total_time = calculated.normal_player_parts
        participation.field_fee_calculated = calculated.field_fee
        participation.video_fee = calculated.video_fee
        participation.late_fee = calculated.late_fee
        participation.total_fee_calculated = calculated.total_fee

    @staticmethod
    def _persisted_calculation(participation: ParticipationRecord) -> FeeCalculationResult:
        grid = PlayerAttendance.from_dict(participation.attendance_data)
        return FeeCalculationResult(
            normal_player_parts=participation.total_time or 0,
            sections_with_normal_play=count_sections_with_normal_play(grid),
            field_fee=participation.field_fee_calculated or 0,
            video_fee=participation.video_fee or 0,
            late_fee=participation.late_fee or 0,
            total_fee=participation.total_fee_calculated or 0,
        )

    @staticmethod
    def _player_breakdown(
        participation: ParticipationRecord,
        calculated: FeeCalculationResult,
        override: Optional[FeeOverride]
    ) -> PlayerFeeBreakdown:
        player = participation.player
        return PlayerFeeBreakdown(
            player_id=participation.player_id,
            player_name=player.name if player is not None else f"Player-{participation.player_id}",
            total_time=participation.total_time or 0,
            is_late_arrival=bool(participation.is_late_arrival),
            calculated_fees=calculated,
            overrides=override,
            final_fees=FinalFees.merge(calculated, override),
        )

    @staticmethod
    def _match_breakdown(
        match_id: str,
        coefficient: float,
        players: List[PlayerFeeBreakdown]
    ) -> MatchFeeBreakdown:
        return MatchFeeBreakdown(
            match_id=match_id,
            total_participants=len(players),
            total_calculated_fees=sum(
                round_fee(player.calculated_fees.total_fee) for player in players
            ),
            total_final_fees=sum(player.final_fees.rounded_total() for player in players),
            fee_coefficient=coefficient,
            players=players,
        )

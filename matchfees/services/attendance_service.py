"""
Attendance service for the Match Fee Allocation Engine.

This module saves a match's full attendance submission: it validates and
resolves the grids, computes base fees outside the database transaction,
replaces the stored participations and events in one short transaction and
then re-merges stored overrides.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select

from ..models import (
    AttendanceUpdateRequest, AttendanceUpdateSummary, EventRecord, MatchInfo, MatchEvent,
    ParticipationRecord, PlayerAttendance
)
from ..utils.constants import ASSIST_EVENT_TYPES, GOAL_EVENT_TYPES
from ..utils.money_utils import format_coefficient
from .attendance_validator import (
    AttendanceValidationResult, AttendanceValidationService, GoalkeeperConflict,
    detect_goalkeeper_conflicts, filter_selected_players
)
from .exceptions import ValidationError
from .fee_calculation_service import FeeCalculationService, rounded_calculation
from .fee_formula import calculate_coefficient, calculate_player_fees, validate_fees, validate_match_costs
from .persistence_service import PersistenceService
from .settings_service import SettingsService

logger = logging.getLogger(__name__)


class AttendanceService:
    """
    Service for saving and reading match attendance.

    Validation and fee computation never run inside a transaction; the
    transaction only swaps the stored rows.
    """

    def __init__(
        self,
        persistence_service: PersistenceService,
        settings_service: SettingsService,
        validation_service: Optional[AttendanceValidationService] = None,
        fee_calculation_service: Optional[FeeCalculationService] = None
    ):
        self.persistence = persistence_service
        self.settings = settings_service
        self.validator = validation_service or AttendanceValidationService()
        self.fee_calculation = fee_calculation_service

    def update_attendance(
        self,
        match_id: str,
        request: AttendanceUpdateRequest,
        match_info: Optional[MatchInfo] = None,
        selected_player_ids: Optional[Iterable[str]] = None,
        expected_version: Optional[int] = None
    ) -> AttendanceUpdateSummary:
        """
        Replace the attendance and events of a match.

        Args:
            match_id: Match identifier
            request: Grids keyed by player id plus events
            match_info: Cost inputs; missing values fall back to the stored match
            selected_player_ids: Roster to validate against; defaults to the stored roster
            expected_version: Reject the save if another save happened since this version

        Returns:
            AttendanceUpdateSummary

        Raises:
            ValidationError: Malformed attendance, events or costs (negative or non-finite); nothing is saved
            NotFoundError: Unknown match
            ConflictError: Stale expected_version
            PersistenceTimeoutError: The transaction timed out and was rolled back
        """
        match_info = match_info or MatchInfo()
        cost_errors = validate_match_costs(
            match_info.field_fee_total, match_info.water_fee_total,
            match_info.late_fee_rate, match_info.video_fee_per_unit
        )
        if cost_errors:
            raise ValidationError("Invalid match costs", details=cost_errors)

        with self.persistence.session_scope() as session:
            match = self.persistence.get_match(session, match_id)
            if selected_player_ids is None:
                selected_player_ids = self.persistence.selected_player_ids(session, match_id)
            selected_player_ids = list(selected_player_ids)
            player_names = self.persistence.player_names(session, selected_player_ids)
            field_fee_total = _first_set(match_info.field_fee_total, match.field_fee_total, 0.0)
            water_fee_total = _first_set(match_info.water_fee_total, match.water_fee_total, 0.0)
            late_fee_rate = _first_set(
                match_info.late_fee_rate, match.late_fee_rate, self.settings.get_late_fee_rate()
            )
            video_fee_rate = _first_set(
                match_info.video_fee_per_unit, match.video_fee_per_unit, self.settings.get_video_fee_rate()
            )

        validation = self.validator.validate_attendance_data(
            request.attendance_data, selected_player_ids, request.events, player_names
        )
        if not validation.is_valid:
            logger.warning(
                "Rejected attendance for match %s: %d error(s)", match_id, len(validation.errors)
            )
            raise ValidationError("Invalid attendance data", details=validation.errors)
        for warning in validation.warnings:
            logger.warning("Attendance for match %s: %s", match_id, warning)

        coefficient = calculate_coefficient(field_fee_total, water_fee_total)
        participations = []
        for player_id, grid in validation.resolved_data.items():
            calculated = rounded_calculation(calculate_player_fees(
                grid, grid.is_late_arrival, coefficient, late_fee_rate, video_fee_rate
            ))
            participations.append({
                "player_id": player_id,
                "attendance_data": grid.to_dict(),
                "is_late_arrival": grid.is_late_arrival,
                "total_time": calculated.normal_player_parts,
                "field_fee_calculated": calculated.field_fee,
                "video_fee": calculated.video_fee,
                "late_fee": calculated.late_fee,
                "total_fee_calculated": calculated.total_fee,
            })
        events = [
            {"player_id": event.player_id, "event_type": event.event_type, "minute": event.minute}
            for event in validation.events
        ]
        match_updates = {
            column: value for column, value in (
                ("field_fee_total", match_info.field_fee_total),
                ("water_fee_total", match_info.water_fee_total),
                ("late_fee_rate", match_info.late_fee_rate),
                ("video_fee_per_unit", match_info.video_fee_per_unit),
            ) if value is not None
        }

        version = self.persistence.replace_match_attendance(
            match_id, participations, events,
            expected_version=expected_version, match_updates=match_updates
        )

        if self.fee_calculation is not None:
            self.fee_calculation.recalculate_all_fees(match_id)

        logger.info(
            "Saved attendance for match %s: %d participations, %d events, %d conflict(s) resolved, coefficient %s",
            match_id, len(participations), len(events), len(validation.conflicts),
            format_coefficient(coefficient)
        )
        return AttendanceUpdateSummary(
            participations_count=len(participations),
            events_count=len(events),
            fee_coefficient=coefficient,
            conflicts_resolved=len(validation.conflicts),
            warnings=validation.warnings,
            attendance_version=version,
        )

    def get_attendance_data(self, match_id: str) -> Dict[str, Any]:
        """
        Stored attendance of a match with a per-player goal/assist summary.

        Raises:
            NotFoundError: Unknown match
        """
        with self.persistence.session_scope() as session:
            match = self.persistence.get_match(session, match_id)
            participations = session.execute(
                select(ParticipationRecord)
                .where(ParticipationRecord.match_id == match_id)
                .order_by(ParticipationRecord.id)
            ).scalars().all()
            events = session.execute(
                select(EventRecord)
                .where(EventRecord.match_id == match_id)
                .order_by(EventRecord.id)
            ).scalars().all()
            selected_ids = self.persistence.selected_player_ids(session, match_id)
            names = self.persistence.player_names(session, selected_ids)

            events_summary: Dict[str, Dict[str, int]] = {}
            for event in events:
                summary = events_summary.setdefault(event.player_id, {"goals": 0, "assists": 0})
                if event.event_type in GOAL_EVENT_TYPES:
                    summary["goals"] += 1
                elif event.event_type in ASSIST_EVENT_TYPES:
                    summary["assists"] += 1

            return {
                "attendanceData": {
                    participation.player_id: PlayerAttendance.from_dict(participation.attendance_data).to_dict()
                    for participation in participations
                },
                "eventsSummary": events_summary,
                "events": [
                    MatchEvent(event.player_id, event.event_type, event.minute).to_dict()
                    for event in events
                ],
                "totalParticipants": len(participations),
                "totalEvents": len(events),
                "selectedPlayers": [
                    {"id": player_id, "name": names.get(player_id, f"Player-{player_id}")}
                    for player_id in selected_ids
                ],
                "attendanceVersion": match.attendance_version or 0,
            }

    def validate_attendance_data(
        self,
        match_id: str,
        attendance_data: Mapping[str, PlayerAttendance],
        events: Optional[Iterable[MatchEvent]] = None,
        selected_player_ids: Optional[Iterable[str]] = None
    ) -> AttendanceValidationResult:
        """
        Validate a submission without saving.

        Args:
            match_id: Match identifier
            attendance_data: Grids keyed by player id
            events: Optional events to check
            selected_player_ids: Roster to validate against; defaults to the stored roster

        Raises:
            NotFoundError: Unknown match
        """
        selected_ids, names = self._roster(match_id, selected_player_ids)
        return self.validator.validate_attendance_data(attendance_data, selected_ids, events, names)

    def preview_goalkeeper_conflicts(
        self,
        match_id: str,
        attendance_data: Mapping[str, PlayerAttendance],
        selected_player_ids: Optional[Iterable[str]] = None
    ) -> List[GoalkeeperConflict]:
        """Goalkeeper conflicts a save would auto-resolve."""
        selected_ids, names = self._roster(match_id, selected_player_ids)
        return detect_goalkeeper_conflicts(filter_selected_players(attendance_data, selected_ids), names)

    def _roster(self, match_id: str, selected_player_ids: Optional[Iterable[str]] = None):
        with self.persistence.session_scope() as session:
            self.persistence.get_match(session, match_id)
            if selected_player_ids is None:
                selected_ids = self.persistence.selected_player_ids(session, match_id)
            else:
                selected_ids = list(selected_player_ids)
            return selected_ids, self.persistence.player_names(session, selected_ids)


def _first_set(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return float(value)
    return None

"""
Attendance validation service for ensuring grid integrity and goalkeeper exclusivity.

This module validates a full match's attendance submission, detects players
marked goalkeeper for the same (section, part) slot and resolves those
conflicts in favour of the most recent submission.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models import MatchEvent, PlayerAttendance
from ..utils.constants import EVENT_TYPES, PARTS, SECTIONS, VALID_ATTENDANCE_VALUES

logger = logging.getLogger(__name__)


class ValidationResult:
    """Result of a validation operation with success status, errors and warnings."""

    def __init__(self, is_valid: bool = True, errors: Optional[List[str]] = None,
                 warnings: Optional[List[str]] = None):
        self.is_valid = is_valid
        self.errors = errors or []
        self.warnings = warnings or []

    def add_error(self, error: str) -> None:
        """Add an error message and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning; validity is unaffected."""
        self.warnings.append(warning)

    def combine(self, other: 'ValidationResult') -> 'ValidationResult':
        """Combine with another validation result."""
        return ValidationResult(
            is_valid=self.is_valid and other.is_valid,
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings
        )


@dataclass
class GoalkeeperConflict:
    """Two players marked goalkeeper for the same slot; the newer one wins."""
    section: int
    part: int
    existing_goalkeeper_id: str
    existing_goalkeeper_name: str
    new_goalkeeper_id: str
    new_goalkeeper_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "part": self.part,
            "existingGoalkeeperId": self.existing_goalkeeper_id,
            "existingGoalkeeperName": self.existing_goalkeeper_name,
            "newGoalkeeperId": self.new_goalkeeper_id,
            "newGoalkeeperName": self.new_goalkeeper_name,
        }


@dataclass
class AttendanceValidationResult:
    """Outcome of validating a whole match submission."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    conflicts: List[GoalkeeperConflict] = field(default_factory=list)
    resolved_data: Dict[str, PlayerAttendance] = field(default_factory=dict)
    events: List[MatchEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "resolvedData": {
                player_id: grid.to_dict() for player_id, grid in self.resolved_data.items()
            },
        }


class ValidationRule(ABC):
    """Abstract base class for validation rules."""

    @abstractmethod
    def validate(self, *args, **kwargs) -> ValidationResult:
        """Perform validation and return result."""
        pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class AttendanceStructureValidator(ValidationRule):
    """Validates the 3x3 shape, permitted values and goalkeeper invariant of one grid."""

    def validate(self, player_id: str, grid: PlayerAttendance) -> ValidationResult:
        result = ValidationResult()
        prefix = f"Player {player_id}"

        if not isinstance(grid.attendance, dict) or not isinstance(grid.goalkeeper, dict):
            result.add_error(f"{prefix}: attendance and goalkeeper maps are required")
            return result

        if not isinstance(grid.is_late_arrival, bool):
            result.add_error(f"{prefix}: isLateArrival must be a boolean")

        for section in SECTIONS:
            values = grid.attendance.get(str(section))
            flags = grid.goalkeeper.get(str(section))
            if not isinstance(values, dict) or not isinstance(flags, dict):
                result.add_error(f"{prefix}: section {section} is missing")
                continue

            for part in PARTS:
                cell = f"section {section} part {part}"
                value = values.get(str(part))
                is_goalkeeper = flags.get(str(part))

                if not _is_number(value):
                    result.add_error(f"{prefix}: {cell} attendance value is missing or not a number")
                    continue
                if value not in VALID_ATTENDANCE_VALUES:
                    result.add_error(
                        f"{prefix}: {cell} value {value} is not one of "
                        f"{', '.join(str(v) for v in VALID_ATTENDANCE_VALUES)}"
                    )
                if not isinstance(is_goalkeeper, bool):
                    result.add_error(f"{prefix}: {cell} goalkeeper flag is missing or not a boolean")
                    continue
                if is_goalkeeper and value <= 0:
                    result.add_error(f"{prefix}: {cell} is marked goalkeeper without attendance")

        return result


class EventValidator(ValidationRule):
    """Validates event types and minutes; drops events of unselected players."""

    def validate(self, events: Iterable[MatchEvent], selected_player_ids: Iterable[str]) -> ValidationResult:
        result = ValidationResult()
        selected = set(selected_player_ids)

        for index, event in enumerate(events, 1):
            if event.event_type not in EVENT_TYPES:
                result.add_error(f"Event {index}: unknown event type '{event.event_type}'")
            if event.minute is not None and (not _is_number(event.minute) or event.minute < 0):
                result.add_error(f"Event {index}: minute must be a non-negative number")
            if event.player_id not in selected:
                result.add_warning(
                    f"Event {index}: player {event.player_id} is not selected for this match and was dropped"
                )

        return result


def filter_selected_players(
    attendance_data: Mapping[str, PlayerAttendance],
    selected_player_ids: Iterable[str]
) -> Dict[str, PlayerAttendance]:
    """Drop players absent from the roster, keeping submission order."""
    selected = set(selected_player_ids)
    return {player_id: grid for player_id, grid in attendance_data.items() if player_id in selected}


def detect_goalkeeper_conflicts(
    attendance_data: Mapping[str, PlayerAttendance],
    player_names: Optional[Mapping[str, str]] = None
) -> List[GoalkeeperConflict]:
    """
    Find slots with more than one goalkeeper.

    The last goalkeeper in submission order wins each slot; every earlier one
    produces a conflict naming the winner.
    """
    player_names = player_names or {}
    goalkeepers: Dict[Tuple[int, int], List[str]] = {}

    for player_id, grid in attendance_data.items():
        for section, part in grid.goalkeeper_cells():
            goalkeepers.setdefault((section, part), []).append(player_id)

    conflicts = []
    for (section, part), player_ids in sorted(goalkeepers.items()):
        winner = player_ids[-1]
        for loser in player_ids[:-1]:
            if loser == winner:
                continue
            conflicts.append(GoalkeeperConflict(
                section=section,
                part=part,
                existing_goalkeeper_id=loser,
                existing_goalkeeper_name=player_names.get(loser, f"Player-{loser}"),
                new_goalkeeper_id=winner,
                new_goalkeeper_name=player_names.get(winner, f"Player-{winner}"),
            ))
    return conflicts


def resolve_goalkeeper_conflicts(
    attendance_data: Mapping[str, PlayerAttendance],
    conflicts: Iterable[GoalkeeperConflict]
) -> Dict[str, PlayerAttendance]:
    """
    Remove losing goalkeepers from their slots.

    Works on copies: each losing player's cell gets value 0 and goalkeeper
    False. Applying the same conflicts again yields the same grids.
    """
    resolved = {player_id: grid.copy() for player_id, grid in attendance_data.items()}
    for conflict in conflicts:
        grid = resolved.get(conflict.existing_goalkeeper_id)
        if grid is not None:
            grid.set_cell(conflict.section, conflict.part, 0, is_goalkeeper=False)
    return resolved


class AttendanceValidationService:
    """
    Attendance validation service.

    Orchestrates roster filtering, structural checks, event checks and
    goalkeeper conflict resolution. Pure computation, no persistence.
    """

    def __init__(self):
        self.structure_validator = AttendanceStructureValidator()
        self.event_validator = EventValidator()

    def validate_attendance_data(
        self,
        attendance_data: Mapping[str, PlayerAttendance],
        selected_player_ids: Iterable[str],
        events: Optional[Iterable[MatchEvent]] = None,
        player_names: Optional[Mapping[str, str]] = None
    ) -> AttendanceValidationResult:
        """
        Validate a match submission and auto-resolve goalkeeper conflicts.

        Args:
            attendance_data: Grids keyed by player id, in submission order
            selected_player_ids: Current match roster; others are dropped silently
            events: Optional events submitted with the grids
            player_names: Optional display names for conflict reports

        Returns:
            AttendanceValidationResult; conflicts never make it invalid
        """
        selected_player_ids = list(selected_player_ids)
        filtered = filter_selected_players(attendance_data, selected_player_ids)

        result = ValidationResult()
        for player_id, grid in filtered.items():
            result = result.combine(self.structure_validator.validate(player_id, grid))

        events = list(events or [])
        if events:
            result = result.combine(self.event_validator.validate(events, selected_player_ids))
        selected = set(selected_player_ids)
        kept_events = [event for event in events if event.player_id in selected]

        if not result.is_valid:
            return AttendanceValidationResult(
                is_valid=False,
                errors=result.errors,
                warnings=result.warnings,
                resolved_data=filtered,
                events=kept_events,
            )

        conflicts = detect_goalkeeper_conflicts(filtered, player_names)
        warnings = list(result.warnings)
        if conflicts:
            warnings.append(f"Found {len(conflicts)} goalkeeper conflict(s) that will be auto-resolved")
            for conflict in conflicts:
                logger.info(
                    "Goalkeeper conflict at section %s part %s: %s replaced by %s",
                    conflict.section, conflict.part,
                    conflict.existing_goalkeeper_id, conflict.new_goalkeeper_id
                )
            resolved = resolve_goalkeeper_conflicts(filtered, conflicts)
        else:
            resolved = filtered

        return AttendanceValidationResult(
            is_valid=True,
            errors=[],
            warnings=warnings,
            conflicts=conflicts,
            resolved_data=resolved,
            events=kept_events,
        )

    def check_grid(self, player_id: str, grid: PlayerAttendance) -> List[str]:
        """Structural errors of a single grid (empty if valid)."""
        return self.structure_validator.validate(player_id, grid).errors

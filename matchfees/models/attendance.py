"""
Attendance models for the Match Fee Allocation Engine.

This module contains the per-player attendance grid (3 sections x 3 parts),
match events, and the request/response shapes of an attendance save.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..utils.constants import SECTIONS, PARTS


def _empty_values() -> Dict[str, Dict[str, Any]]:
    return {str(s): {str(p): 0 for p in PARTS} for s in SECTIONS}


def _empty_flags() -> Dict[str, Dict[str, Any]]:
    return {str(s): {str(p): False for p in PARTS} for s in SECTIONS}


def _normalize_keys(grid: Any) -> Any:
    """Stringify section/part keys; leave malformed input for the validator to report."""
    if not isinstance(grid, dict):
        return copy.deepcopy(grid)
    normalized = {}
    for section, parts in grid.items():
        if isinstance(parts, dict):
            normalized[str(section)] = {str(part): value for part, value in parts.items()}
        else:
            normalized[str(section)] = copy.deepcopy(parts)
    return normalized


@dataclass
class PlayerAttendance:
    """
    One player's attendance grid for one match.

    Attributes:
        attendance: Cell values keyed by section then part ("1".."3"), each 0, 0.5 or 1
        goalkeeper: Goalkeeper flags with the same shape as attendance
        is_late_arrival: Whether the player arrived late

    The raw nested dictionaries are kept as submitted so the validator can
    report structural problems; use value()/is_goalkeeper() once validated.
    """
    attendance: Dict[str, Dict[str, Any]] = field(default_factory=_empty_values)
    goalkeeper: Dict[str, Dict[str, Any]] = field(default_factory=_empty_flags)
    is_late_arrival: Any = False

    def value(self, section: int, part: int) -> float:
        """Attendance value of a cell (0 when missing)."""
        return float(self.attendance.get(str(section), {}).get(str(part), 0) or 0)

    def is_goalkeeper(self, section: int, part: int) -> bool:
        """Whether the player kept goal in a cell."""
        return bool(self.goalkeeper.get(str(section), {}).get(str(part), False))

    def set_cell(self, section: int, part: int, value: float, is_goalkeeper: bool = False) -> None:
        """Set both the value and the goalkeeper flag of a cell."""
        self.attendance.setdefault(str(section), {})[str(part)] = value
        self.goalkeeper.setdefault(str(section), {})[str(part)] = is_goalkeeper

    def cells(self) -> Iterator[Tuple[int, int, float, bool]]:
        """Iterate (section, part, value, is_goalkeeper) over all 9 cells."""
        for section in SECTIONS:
            for part in PARTS:
                yield section, part, self.value(section, part), self.is_goalkeeper(section, part)

    def goalkeeper_cells(self) -> List[Tuple[int, int]]:
        """Cells where the player is marked goalkeeper."""
        return [(s, p) for s, p, _, is_gk in self.cells() if is_gk]

    def copy(self) -> "PlayerAttendance":
        """Deep copy of this grid."""
        return PlayerAttendance(
            attendance=copy.deepcopy(self.attendance),
            goalkeeper=copy.deepcopy(self.goalkeeper),
            is_late_arrival=self.is_late_arrival,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "attendance": copy.deepcopy(self.attendance),
            "goalkeeper": copy.deepcopy(self.goalkeeper),
            "isLateArrival": self.is_late_arrival,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlayerAttendance":
        """Create from dictionary for JSON deserialization."""
        if not data:
            return cls(attendance={}, goalkeeper={}, is_late_arrival=False)
        if "isLateArrival" in data:
            is_late = data["isLateArrival"]
        else:
            is_late = data.get("is_late_arrival", False)
        return cls(
            attendance=_normalize_keys(data.get("attendance")),
            goalkeeper=_normalize_keys(data.get("goalkeeper")),
            is_late_arrival=is_late,
        )

    @classmethod
    def from_cells(
        cls,
        values: Dict[Tuple[int, int], float],
        goalkeeper_cells: Iterable[Tuple[int, int]] = (),
        is_late_arrival: bool = False
    ) -> "PlayerAttendance":
        """
        Build a complete grid from a sparse mapping of cell values.

        Args:
            values: {(section, part): value}; unspecified cells are 0
            goalkeeper_cells: Cells where the player kept goal
            is_late_arrival: Late arrival flag

        Example:
            >>> grid = PlayerAttendance.from_cells({(1, 1): 1, (2, 1): 0.5})
            >>> grid.value(2, 1)
            0.5
        """
        grid = cls(is_late_arrival=is_late_arrival)
        for (section, part), value in values.items():
            grid.set_cell(section, part, value)
        for section, part in goalkeeper_cells:
            grid.goalkeeper[str(section)][str(part)] = True
        return grid

    @classmethod
    def full(cls, is_late_arrival: bool = False) -> "PlayerAttendance":
        """Grid with full participation in every cell."""
        return cls.from_cells({(s, p): 1 for s in SECTIONS for p in PARTS},
                              is_late_arrival=is_late_arrival)


@dataclass
class MatchEvent:
    """A goal, assist, card, penalty outcome, own goal or save."""
    player_id: str
    event_type: str
    minute: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "playerId": self.player_id,
            "eventType": self.event_type,
            "minute": self.minute,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchEvent":
        """Create from dictionary for JSON deserialization."""
        return cls(
            player_id=str(data.get("playerId", data.get("player_id", ""))),
            event_type=str(data.get("eventType", data.get("event_type", ""))).upper(),
            minute=data.get("minute"),
        )


@dataclass
class AttendanceUpdateRequest:
    """A full attendance submission for one match, in submission order."""
    attendance_data: Dict[str, PlayerAttendance] = field(default_factory=dict)
    events: List[MatchEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttendanceUpdateRequest":
        """Create from dictionary for JSON deserialization."""
        raw_attendance = data.get("attendanceData") or {}
        return cls(
            attendance_data={
                str(player_id): PlayerAttendance.from_dict(grid)
                for player_id, grid in raw_attendance.items()
            },
            events=[MatchEvent.from_dict(event) for event in data.get("events") or []],
        )


@dataclass
class MatchInfo:
    """
    Cost inputs supplied with an attendance save.

    Any field left as None falls back to the stored match, then to global defaults.
    """
    field_fee_total: Optional[float] = None
    water_fee_total: Optional[float] = None
    late_fee_rate: Optional[float] = None
    video_fee_per_unit: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MatchInfo":
        """Create from dictionary for JSON deserialization."""
        if not data:
            return cls()

        def _number(key: str) -> Optional[float]:
            value = data.get(key)
            return float(value) if value is not None else None

        return cls(
            field_fee_total=_number("fieldFeeTotal"),
            water_fee_total=_number("waterFeeTotal"),
            late_fee_rate=_number("lateFeeRate"),
            video_fee_per_unit=_number("videoFeePerUnit"),
        )


@dataclass
class AttendanceUpdateSummary:
    """Outcome of a successful attendance save."""
    participations_count: int
    events_count: int
    fee_coefficient: float
    conflicts_resolved: int
    warnings: List[str] = field(default_factory=list)
    attendance_version: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "participationsCount": self.participations_count,
            "eventsCount": self.events_count,
            "feeCoefficient": round(self.fee_coefficient, 4),
            "conflictsResolved": self.conflicts_resolved,
            "warnings": list(self.warnings),
            "attendanceVersion": self.attendance_version,
        }

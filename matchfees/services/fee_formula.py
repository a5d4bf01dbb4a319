"""
Fee formula for the Match Fee Allocation Engine.

This module derives the per-unit field-cost coefficient of a match and the
base (pre-override) fees of a single player from their attendance grid.

Key rules:
- Goalkeeper cells are exempt from the field fee
- Video fee is charged per section with any non-goalkeeper play
- Late fee is a flat per-match rate
"""
import math
from typing import List, Optional

from ..models import FeeCalculationResult, PlayerAttendance
from ..utils.constants import (
    DEFAULT_LATE_FEE_RATE, DEFAULT_VIDEO_FEE_RATE, FIXED_TOTAL_TIME_UNITS
)


def calculate_coefficient(field_fee_total: float, water_fee_total: float) -> float:
    """
    Calculate the fee coefficient of a match.

    The denominator is a fixed nominal capacity (9 slots of 10 players), so
    the per-unit price does not depend on how many players turned up.

    Args:
        field_fee_total: Total field rental cost
        water_fee_total: Total water/incidentals cost

    Returns:
        Cost per player-slot unit, or 0.0 when either total is negative

    Example:
        >>> round(calculate_coefficient(200, 50), 4)
        2.7778
    """
    if field_fee_total < 0 or water_fee_total < 0:
        return 0.0
    return (field_fee_total + water_fee_total) / FIXED_TOTAL_TIME_UNITS


def _check_amount(value: Optional[float], label: str, errors: List[str]) -> None:
    if value is None:
        return
    if not math.isfinite(value):
        errors.append(f"{label} must be a finite number")
    elif value < 0:
        errors.append(f"{label} cannot be negative")


def validate_fees(field_fee_total: Optional[float], water_fee_total: Optional[float]) -> List[str]:
    """
    Validate match cost totals.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors: List[str] = []
    _check_amount(field_fee_total, "Field fee", errors)
    _check_amount(water_fee_total, "Water fee", errors)
    return errors


def validate_match_costs(
    field_fee_total: Optional[float],
    water_fee_total: Optional[float],
    late_fee_rate: Optional[float] = None,
    video_fee_per_unit: Optional[float] = None
) -> List[str]:
    """Validate cost totals and per-match rates; None values are not checked."""
    errors = validate_fees(field_fee_total, water_fee_total)
    _check_amount(late_fee_rate, "Late fee rate", errors)
    _check_amount(video_fee_per_unit, "Video fee per unit", errors)
    return errors


def count_normal_player_parts(grid: PlayerAttendance) -> float:
    """Sum of cell values played outside goal."""
    return sum(value for _, _, value, is_gk in grid.cells() if value > 0 and not is_gk)


def count_sections_with_normal_play(grid: PlayerAttendance) -> int:
    """Number of distinct sections with any non-goalkeeper attendance."""
    return len({section for section, _, value, is_gk in grid.cells() if value > 0 and not is_gk})


def calculate_player_fees(
    grid: PlayerAttendance,
    is_late_arrival: bool,
    fee_coefficient: float,
    late_fee_rate: float = DEFAULT_LATE_FEE_RATE,
    video_fee_rate: float = DEFAULT_VIDEO_FEE_RATE
) -> FeeCalculationResult:
    """
    Calculate base fees for a player.

    Args:
        grid: Validated attendance grid
        is_late_arrival: Whether the late fee applies
        fee_coefficient: Match coefficient from calculate_coefficient()
        late_fee_rate: Flat late fee for this match
        video_fee_rate: Video fee per section played

    Returns:
        Unrounded fee breakdown; rounding happens at persistence/response boundaries
    """
    normal_player_parts = count_normal_player_parts(grid)
    sections_with_normal_play = count_sections_with_normal_play(grid)

    field_fee = normal_player_parts * fee_coefficient
    video_fee = sections_with_normal_play * float(video_fee_rate)
    late_fee = float(late_fee_rate) if is_late_arrival else 0.0

    return FeeCalculationResult(
        normal_player_parts=normal_player_parts,
        sections_with_normal_play=sections_with_normal_play,
        field_fee=field_fee,
        video_fee=video_fee,
        late_fee=late_fee,
        total_fee=field_fee + video_fee + late_fee,
    )

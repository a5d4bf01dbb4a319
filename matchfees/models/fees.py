"""Dataclasses representing fee calculations, overrides and breakdowns."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.money_utils import round_fee, rounded_total


@dataclass
class FeeCalculationResult:
    """Base (pre-override) fees for one player, unrounded."""

    normal_player_parts: float
    sections_with_normal_play: int
    field_fee: float
    video_fee: float
    late_fee: float
    total_fee: float

    def to_dict(self) -> Dict[str, Any]:
        field_fee = round_fee(self.field_fee)
        video_fee = round_fee(self.video_fee)
        late_fee = round_fee(self.late_fee)
        return {
            "normalPlayerParts": self.normal_player_parts,
            "sectionsWithNormalPlay": self.sections_with_normal_play,
            "fieldFee": field_fee,
            "videoFee": video_fee,
            "lateFee": late_fee,
            "totalFee": field_fee + video_fee + late_fee,
        }


@dataclass
class FeeOverride:
    """
    Manual replacement of individual fee components.

    A None component means "use the calculated value"; any other value,
    including 0, replaces it.
    """

    field_fee_override: Optional[float] = None
    video_fee_override: Optional[float] = None
    late_fee_override: Optional[float] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldFeeOverride": round_fee(self.field_fee_override),
            "videoFeeOverride": round_fee(self.video_fee_override),
            "lateFeeOverride": round_fee(self.late_fee_override),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FeeOverride":
        if not data:
            return cls()

        def _amount(camel: str, snake: str) -> Optional[float]:
            value = data.get(camel, data.get(snake))
            return float(value) if value is not None else None

        notes = data.get("notes")
        return cls(
            field_fee_override=_amount("fieldFeeOverride", "field_fee_override"),
            video_fee_override=_amount("videoFeeOverride", "video_fee_override"),
            late_fee_override=_amount("lateFeeOverride", "late_fee_override"),
            notes=str(notes) if notes is not None else None,
        )


@dataclass
class FinalFees:
    """Fees actually charged: override when present, else calculated."""

    field_fee: float
    video_fee: float
    late_fee: float
    total_fee: float

    @classmethod
    def merge(cls, calculated: FeeCalculationResult, override: Optional[FeeOverride]) -> "FinalFees":
        """Apply an override on top of calculated fees, component by component."""
        field_fee = calculated.field_fee
        video_fee = calculated.video_fee
        late_fee = calculated.late_fee
        if override is not None:
            if override.field_fee_override is not None:
                field_fee = override.field_fee_override
            if override.video_fee_override is not None:
                video_fee = override.video_fee_override
            if override.late_fee_override is not None:
                late_fee = override.late_fee_override
        return cls(
            field_fee=field_fee,
            video_fee=video_fee,
            late_fee=late_fee,
            total_fee=field_fee + video_fee + late_fee,
        )

    def rounded_total(self) -> int:
        return rounded_total((self.field_fee, self.video_fee, self.late_fee))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldFee": round_fee(self.field_fee),
            "videoFee": round_fee(self.video_fee),
            "lateFee": round_fee(self.late_fee),
            "totalFee": self.rounded_total(),
        }


@dataclass
class PlayerFeeBreakdown:
    """Calculated, override and final fees of one player in one match."""

    player_id: str
    player_name: str
    total_time: float
    is_late_arrival: bool
    calculated_fees: FeeCalculationResult
    overrides: Optional[FeeOverride]
    final_fees: FinalFees
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "playerId": self.player_id,
            "playerName": self.player_name,
            "totalTime": self.total_time,
            "isLateArrival": self.is_late_arrival,
            "calculatedFees": self.calculated_fees.to_dict(),
            "overrides": self.overrides.to_dict() if self.overrides else None,
            "finalFees": self.final_fees.to_dict(),
            "warnings": list(self.warnings),
        }


@dataclass
class MatchFeeBreakdown:
    """Match-wide fee view; totals are sums of rounded per-player totals."""

    match_id: str
    total_participants: int
    total_calculated_fees: int
    total_final_fees: int
    fee_coefficient: float
    players: List[PlayerFeeBreakdown] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchId": self.match_id,
            "totalParticipants": self.total_participants,
            "totalCalculatedFees": self.total_calculated_fees,
            "totalFinalFees": self.total_final_fees,
            "feeCoefficient": round(self.fee_coefficient, 4),
            "players": [player.to_dict() for player in self.players],
        }


@dataclass
class OverrideValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class BulkItemError:
    player_id: str
    error: str
    code: str = "INTERNAL_ERROR"

    def to_dict(self) -> Dict[str, Any]:
        return {"playerId": self.player_id, "error": self.error, "code": self.code}


@dataclass
class BulkOverrideResult:
    """Per-item outcome of a bulk apply/remove; successes are never rolled back."""

    results: List[PlayerFeeBreakdown] = field(default_factory=list)
    errors: List[BulkItemError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": [result.to_dict() for result in self.results],
            "errors": [error.to_dict() for error in self.errors],
            "successCount": len(self.results),
            "errorCount": len(self.errors),
        }


@dataclass
class OverrideHistoryEntry:
    id: int
    match_id: str
    player_id: str
    player_name: str
    field_fee_override: Optional[float]
    video_fee_override: Optional[float]
    late_fee_override: Optional[float]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "matchId": self.match_id,
            "playerId": self.player_id,
            "playerName": self.player_name,
            "fieldFeeOverride": round_fee(self.field_fee_override),
            "videoFeeOverride": round_fee(self.video_fee_override),
            "lateFeeOverride": round_fee(self.late_fee_override),
            "notes": self.notes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class OverrideStatistics:
    total_players: int
    players_with_overrides: int
    override_percentage: float
    total_calculated_fees: int
    total_final_fees: int
    fee_difference: int
    field_fee_overrides: int = 0
    video_fee_overrides: int = 0
    late_fee_overrides: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPlayers": self.total_players,
            "playersWithOverrides": self.players_with_overrides,
            "overridePercentage": round(self.override_percentage, 2),
            "totalCalculatedFees": self.total_calculated_fees,
            "totalFinalFees": self.total_final_fees,
            "feeDifference": self.fee_difference,
            "overrideTypes": {
                "fieldFeeOverrides": self.field_fee_overrides,
                "videoFeeOverrides": self.video_fee_overrides,
                "lateFeeOverrides": self.late_fee_overrides,
            },
        }


@dataclass
class CopyOverridesResult:
    copied_count: int = 0
    skipped_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "copiedCount": self.copied_count,
            "skippedCount": self.skipped_count,
            "errors": list(self.errors),
        }

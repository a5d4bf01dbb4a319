"""
Models package for the Match Fee Allocation Engine.

This package contains the attendance and fee dataclasses plus the ORM records
of the relational store.
"""
from .attendance import (
    PlayerAttendance, MatchEvent, AttendanceUpdateRequest, MatchInfo, AttendanceUpdateSummary
)
from .fees import (
    FeeCalculationResult, FeeOverride, FinalFees, PlayerFeeBreakdown, MatchFeeBreakdown,
    OverrideValidationResult, BulkItemError, BulkOverrideResult, OverrideHistoryEntry,
    OverrideStatistics, CopyOverridesResult
)
from .records import (
    Base, PlayerRecord, MatchRecord, MatchPlayerRecord, ParticipationRecord,
    EventRecord, FeeOverrideRecord, SystemConfigRecord
)

__all__ = [
    "PlayerAttendance", "MatchEvent", "AttendanceUpdateRequest", "MatchInfo",
    "AttendanceUpdateSummary",
    "FeeCalculationResult", "FeeOverride", "FinalFees", "PlayerFeeBreakdown",
    "MatchFeeBreakdown", "OverrideValidationResult", "BulkItemError", "BulkOverrideResult",
    "OverrideHistoryEntry", "OverrideStatistics", "CopyOverridesResult",
    "Base", "PlayerRecord", "MatchRecord", "MatchPlayerRecord", "ParticipationRecord",
    "EventRecord", "FeeOverrideRecord", "SystemConfigRecord"
]

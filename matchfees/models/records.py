"""
SQLAlchemy ORM records for the Match Fee Allocation Engine.

Logical schema: matches, players, the selected roster of each match,
participations (one attendance grid per player and match), events,
fee overrides and key/value system settings.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


class PlayerRecord(Base):
    __tablename__ = "players"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    jersey_number = Column(Integer, nullable=True)


class MatchRecord(Base):
    __tablename__ = "matches"

    id = Column(String(64), primary_key=True)
    field_fee_total = Column(Float, nullable=False, default=0)
    water_fee_total = Column(Float, nullable=False, default=0)
    # NULL means "use the global default rate"
    late_fee_rate = Column(Float, nullable=True)
    video_fee_per_unit = Column(Float, nullable=True)
    attendance_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    selected_players = relationship("MatchPlayerRecord", cascade="all, delete-orphan")


class MatchPlayerRecord(Base):
    """A player selected for a match roster."""

    __tablename__ = "match_players"
    __table_args__ = (UniqueConstraint("match_id", "player_id", name="uq_match_player"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(64), ForeignKey("players.id"), nullable=False)


class ParticipationRecord(Base):
    """
    Attendance grid plus calculated (base) fees of one player in one match.

    Fee columns hold rounded calculated values only, never override values.
    """

    __tablename__ = "match_participations"
    __table_args__ = (UniqueConstraint("match_id", "player_id", name="uq_participation"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(64), ForeignKey("players.id"), nullable=False)
    attendance_data = Column(JSON, nullable=False)
    is_late_arrival = Column(Boolean, nullable=False, default=False)
    total_time = Column(Float, nullable=False, default=0)
    field_fee_calculated = Column(Float, nullable=False, default=0)
    video_fee = Column(Float, nullable=False, default=0)
    late_fee = Column(Float, nullable=False, default=0)
    total_fee_calculated = Column(Float, nullable=False, default=0)

    player = relationship("PlayerRecord", lazy="joined")


class EventRecord(Base):
    __tablename__ = "match_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(64), ForeignKey("players.id"), nullable=False)
    event_type = Column(String(32), nullable=False)
    minute = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)


class FeeOverrideRecord(Base):
    __tablename__ = "fee_overrides"
    __table_args__ = (UniqueConstraint("match_id", "player_id", name="uq_fee_override"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(64), ForeignKey("players.id"), nullable=False, index=True)
    field_fee_override = Column(Float, nullable=True)
    video_fee_override = Column(Float, nullable=True)
    late_fee_override = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    player = relationship("PlayerRecord", lazy="joined")


class SystemConfigRecord(Base):
    __tablename__ = "system_config"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

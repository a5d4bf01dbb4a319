"""
Persistence service for the Match Fee Allocation Engine.

This module owns the SQLAlchemy engine and sessions, the short write
transaction used when attendance is replaced, and a few store helpers.
"""
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import create_engine, delete, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..models import (
    Base, EventRecord, MatchPlayerRecord, MatchRecord, ParticipationRecord,
    PlayerRecord, SystemConfigRecord
)
from ..utils.constants import DEFAULT_DATABASE_URL, TRANSACTION_TIMEOUT_SECONDS
from .exceptions import ConflictError, NotFoundError, PersistenceTimeoutError

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    return create_engine(database_url, future=True, pool_pre_ping=True)


class PersistenceService:
    """
    Service for persisting matches, attendance, events, overrides and settings.

    Reads go through session_scope(); writes that must be atomic go through
    transaction(), which is bounded by a timeout.
    """

    def __init__(
        self,
        database_url: str = DEFAULT_DATABASE_URL,
        engine: Optional[Engine] = None,
        transaction_timeout: float = TRANSACTION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.engine = engine if engine is not None else build_engine(database_url)
        self.transaction_timeout = transaction_timeout
        self._clock = clock
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a session that commits on success and rolls back on error.

        Yields:
            SQLAlchemy Session
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[Session]:
        """
        Provide a session for a write that must finish within a timeout.

        PostgreSQL gets a statement_timeout for the transaction; every backend
        checks a wall-clock deadline before committing.

        Args:
            timeout: Seconds allowed; defaults to the configured timeout

        Raises:
            PersistenceTimeoutError: If the deadline passed; nothing is committed
        """
        timeout = self.transaction_timeout if timeout is None else timeout
        deadline = self._clock() + timeout
        session = self._session_factory()
        try:
            if self.engine.dialect.name == "postgresql":
                session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))
            yield session
            session.flush()
            if self._clock() > deadline:
                raise PersistenceTimeoutError(
                    f"Transaction exceeded {timeout:g}s and was rolled back"
                )
            session.commit()
        except OperationalError as e:
            session.rollback()
            if "statement timeout" in str(e):
                raise PersistenceTimeoutError(
                    f"Transaction exceeded {timeout:g}s and was rolled back"
                ) from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Store helpers

    @staticmethod
    def get_match(session: Session, match_id: str, lock: bool = False) -> MatchRecord:
        """
        Load a match or raise NotFoundError.

        Args:
            session: Open session
            match_id: Match identifier
            lock: Take a row lock (SELECT ... FOR UPDATE where supported)
        """
        stmt = select(MatchRecord).where(MatchRecord.id == match_id)
        if lock:
            stmt = stmt.with_for_update()
        match = session.execute(stmt).scalar_one_or_none()
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    @staticmethod
    def get_player(session: Session, player_id: str) -> PlayerRecord:
        player = session.get(PlayerRecord, player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")
        return player

    @staticmethod
    def selected_player_ids(session: Session, match_id: str) -> List[str]:
        """Current roster of a match, in insertion order."""
        rows = session.execute(
            select(MatchPlayerRecord.player_id)
            .where(MatchPlayerRecord.match_id == match_id)
            .order_by(MatchPlayerRecord.id)
        ).scalars().all()
        return list(rows)

    @staticmethod
    def player_names(session: Session, player_ids: Iterable[str]) -> Dict[str, str]:
        player_ids = list(player_ids)
        if not player_ids:
            return {}
        rows = session.execute(
            select(PlayerRecord.id, PlayerRecord.name).where(PlayerRecord.id.in_(player_ids))
        ).all()
        return {player_id: name for player_id, name in rows}

    def replace_match_attendance(
        self,
        match_id: str,
        participations: List[Dict[str, Any]],
        events: List[Dict[str, Any]],
        expected_version: Optional[int] = None,
        match_updates: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> int:
        """
        Replace every participation and event of a match in one transaction.

        Args:
            match_id: Match identifier
            participations: Participation column values, one dict per player
            events: Event column values
            expected_version: Reject the save if the stored version differs
            match_updates: Match column values saved in the same transaction
            timeout: Transaction timeout override

        Returns:
            The new attendance version

        Raises:
            NotFoundError: Unknown match
            ConflictError: Stale expected_version
            PersistenceTimeoutError: Transaction timed out
        """
        with self.transaction(timeout) as session:
            match = self.get_match(session, match_id, lock=True)
            current_version = match.attendance_version or 0
            if expected_version is not None and current_version != expected_version:
                raise ConflictError(
                    f"Attendance for match {match_id} was modified by another save",
                    details=[{"expectedVersion": expected_version, "currentVersion": current_version}]
                )

            session.execute(delete(ParticipationRecord).where(ParticipationRecord.match_id == match_id))
            session.execute(delete(EventRecord).where(EventRecord.match_id == match_id))
            session.add_all([ParticipationRecord(match_id=match_id, **row) for row in participations])
            session.add_all([EventRecord(match_id=match_id, **row) for row in events])

            for column, value in (match_updates or {}).items():
                setattr(match, column, value)
            match.attendance_version = current_version + 1
            new_version = match.attendance_version

        logger.info(
            "Replaced attendance for match %s: %d participations, %d events (version %d)",
            match_id, len(participations), len(events), new_version
        )
        return new_version

    def add_player(self, player_id: str, name: str, jersey_number: Optional[int] = None) -> None:
        """Insert or rename a player."""
        with self.session_scope() as session:
            player = session.get(PlayerRecord, player_id)
            if player is None:
                session.add(PlayerRecord(id=player_id, name=name, jersey_number=jersey_number))
            else:
                player.name = name
                player.jersey_number = jersey_number

    def create_match(
        self,
        match_id: str,
        field_fee_total: float = 0,
        water_fee_total: float = 0,
        selected_player_ids: Iterable[str] = (),
        late_fee_rate: Optional[float] = None,
        video_fee_per_unit: Optional[float] = None
    ) -> None:
        """Create a match with its selected roster."""
        with self.session_scope() as session:
            match = MatchRecord(
                id=match_id,
                field_fee_total=field_fee_total,
                water_fee_total=water_fee_total,
                late_fee_rate=late_fee_rate,
                video_fee_per_unit=video_fee_per_unit,
                attendance_version=0,
            )
            match.selected_players = [
                MatchPlayerRecord(match_id=match_id, player_id=player_id)
                for player_id in selected_player_ids
            ]
            session.add(match)

    def set_selected_players(self, match_id: str, player_ids: Iterable[str]) -> None:
        """Replace the roster of a match."""
        with self.session_scope() as session:
            self.get_match(session, match_id)
            session.execute(delete(MatchPlayerRecord).where(MatchPlayerRecord.match_id == match_id))
            session.add_all([
                MatchPlayerRecord(match_id=match_id, player_id=player_id)
                for player_id in player_ids
            ])

    def load_settings(self) -> Dict[str, str]:
        """All system_config rows as a key/value map."""
        with self.session_scope() as session:
            rows = session.execute(select(SystemConfigRecord.key, SystemConfigRecord.value)).all()
            return {key: value for key, value in rows}

    def save_setting(self, key: str, value: Any, description: Optional[str] = None) -> None:
        with self.session_scope() as session:
            record = session.get(SystemConfigRecord, key)
            if record is None:
                session.add(SystemConfigRecord(key=key, value=str(value), description=description))
            else:
                record.value = str(value)
                if description is not None:
                    record.description = description

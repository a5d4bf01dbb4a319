"""Shared builders for service tests backed by an in-memory SQLite database."""
from types import SimpleNamespace

from matchfees.models import PlayerAttendance
from matchfees.services import (
    AttendanceService, FeeCalculationService, FeeOverrideService, PersistenceService,
    SettingsService
)

PLAYERS = {
    "p1": "Alice",
    "p2": "Bob",
    "p3": "Carol",
    "p4": "Dave",
}


def build_services(**persistence_kwargs) -> SimpleNamespace:
    """Wire every service against a fresh in-memory database."""
    persistence = PersistenceService(database_url="sqlite://", **persistence_kwargs)
    persistence.create_schema()
    settings = SettingsService(loader=persistence.load_settings, ttl_seconds=0)
    fees = FeeCalculationService(persistence, settings)
    return SimpleNamespace(
        persistence=persistence,
        settings=settings,
        fees=fees,
        overrides=FeeOverrideService(fees, persistence),
        attendance=AttendanceService(persistence, settings, fee_calculation_service=fees),
    )


def seed_match(persistence, match_id="m1", field_fee_total=200, water_fee_total=50,
               players=("p1", "p2", "p3"), **rates) -> None:
    """Create the known players and one match selecting some of them."""
    for player_id, name in PLAYERS.items():
        persistence.add_player(player_id, name)
    persistence.create_match(
        match_id,
        field_fee_total=field_fee_total,
        water_fee_total=water_fee_total,
        selected_player_ids=players,
        **rates
    )


def full_grid(is_late_arrival=False, goalkeeper_cells=()) -> PlayerAttendance:
    """Every cell played; optional goalkeeper cells."""
    grid = PlayerAttendance.full(is_late_arrival=is_late_arrival)
    for section, part in goalkeeper_cells:
        grid.set_cell(section, part, 1, is_goalkeeper=True)
    return grid


def four_and_a_half_parts() -> PlayerAttendance:
    """4.5 normal parts spread over sections 1 and 2."""
    return PlayerAttendance.from_cells({
        (1, 1): 1, (1, 2): 1, (1, 3): 0.5,
        (2, 1): 1, (2, 2): 1,
    })

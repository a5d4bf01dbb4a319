"""
Unit tests for AttendanceService.

Tests saving, validation failures, version conflicts, transaction timeouts
and the attendance read model against an in-memory database.
"""
import itertools
import unittest

from sqlalchemy import select

from matchfees.models import (
    AttendanceUpdateRequest, EventRecord, FeeOverride, MatchEvent, MatchInfo,
    MatchRecord, ParticipationRecord, PlayerAttendance
)
from matchfees.services import (
    ConflictError, NotFoundError, PersistenceTimeoutError, ValidationError
)

from support import build_services, four_and_a_half_parts, full_grid, seed_match


class TestAttendanceService(unittest.TestCase):
    """Test cases for saving and reading attendance."""

    def setUp(self) -> None:
        self.services = build_services()
        seed_match(self.services.persistence)
        self.attendance = self.services.attendance

    def _participations(self):
        with self.services.persistence.session_scope() as session:
            return {
                p.player_id: p for p in session.execute(select(ParticipationRecord)).scalars().all()
            }

    def test_save_persists_participations_and_events(self):
        request = AttendanceUpdateRequest(
            attendance_data={"p1": full_grid(), "p2": four_and_a_half_parts()},
            events=[MatchEvent("p1", "GOAL", 10), MatchEvent("p2", "ASSIST", 10)],
        )
        summary = self.attendance.update_attendance("m1", request)

        self.assertEqual(summary.participations_count, 2)
        self.assertEqual(summary.events_count, 2)
        self.assertEqual(summary.conflicts_resolved, 0)
        self.assertEqual(summary.attendance_version, 1)
        self.assertEqual(summary.to_dict()["feeCoefficient"], 2.7778)

        rows = self._participations()
        self.assertEqual(rows["p1"].total_time, 9)
        self.assertEqual(rows["p1"].field_fee_calculated, 25)
        self.assertEqual(rows["p1"].video_fee, 6)
        self.assertEqual(rows["p1"].total_fee_calculated, 31)
        self.assertEqual(rows["p2"].total_time, 4.5)
        self.assertEqual(rows["p2"].video_fee, 4)

    def test_save_replaces_previous_rows(self):
        first = AttendanceUpdateRequest(
            attendance_data={"p1": full_grid(), "p2": full_grid()},
            events=[MatchEvent("p1", "GOAL")],
        )
        self.attendance.update_attendance("m1", first)
        second = AttendanceUpdateRequest(attendance_data={"p3": full_grid()})
        self.attendance.update_attendance("m1", second)

        self.assertEqual(list(self._participations()), ["p3"])
        with self.services.persistence.session_scope() as session:
            self.assertEqual(session.execute(select(EventRecord)).scalars().all(), [])

    def test_conflicts_are_resolved_before_saving(self):
        request = AttendanceUpdateRequest(attendance_data={
            "p1": full_grid(goalkeeper_cells=[(1, 1)]),
            "p2": full_grid(goalkeeper_cells=[(1, 1)]),
        })
        summary = self.attendance.update_attendance("m1", request)

        self.assertEqual(summary.conflicts_resolved, 1)
        self.assertTrue(any("goalkeeper conflict" in w for w in summary.warnings))
        rows = self._participations()
        p1 = PlayerAttendance.from_dict(rows["p1"].attendance_data)
        p2 = PlayerAttendance.from_dict(rows["p2"].attendance_data)
        self.assertEqual(p1.value(1, 1), 0)
        self.assertFalse(p1.is_goalkeeper(1, 1))
        self.assertTrue(p2.is_goalkeeper(1, 1))
        self.assertEqual(rows["p1"].total_time, 8)
        self.assertEqual(rows["p2"].total_time, 8)

    def test_invalid_attendance_persists_nothing(self):
        self.attendance.update_attendance(
            "m1", AttendanceUpdateRequest(attendance_data={"p1": full_grid()})
        )
        bad = full_grid()
        bad.attendance["3"]["3"] = 0.25

        with self.assertRaises(ValidationError) as ctx:
            self.attendance.update_attendance(
                "m1", AttendanceUpdateRequest(attendance_data={"p2": bad})
            )
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")
        self.assertEqual(len(ctx.exception.details), 1)
        self.assertEqual(list(self._participations()), ["p1"])

    def test_negative_match_info_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.attendance.update_attendance(
                "m1",
                AttendanceUpdateRequest(attendance_data={"p1": full_grid()}),
                match_info=MatchInfo(field_fee_total=-10),
            )

    def test_non_finite_match_info_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.attendance.update_attendance(
                "m1",
                AttendanceUpdateRequest(attendance_data={"p1": full_grid()}),
                match_info=MatchInfo(water_fee_total=float("inf"), late_fee_rate=float("nan")),
            )
        self.assertEqual(ctx.exception.details, [
            "Water fee must be a finite number",
            "Late fee rate must be a finite number",
        ])
        self.assertEqual(self._participations(), {})

    def test_match_info_is_applied_and_stored(self):
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid(is_late_arrival=True)})
        summary = self.attendance.update_attendance(
            "m1", request,
            match_info=MatchInfo(field_fee_total=440, water_fee_total=10, late_fee_rate=20)
        )

        self.assertEqual(round(summary.fee_coefficient, 4), 5.0)
        rows = self._participations()
        self.assertEqual(rows["p1"].field_fee_calculated, 45)
        self.assertEqual(rows["p1"].late_fee, 20)
        with self.services.persistence.session_scope() as session:
            match = session.get(MatchRecord, "m1")
            self.assertEqual(match.field_fee_total, 440)
            self.assertEqual(match.late_fee_rate, 20)

    def test_unselected_players_are_ignored(self):
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid(), "p4": full_grid()})
        summary = self.attendance.update_attendance("m1", request)
        self.assertEqual(summary.participations_count, 1)
        self.assertEqual(list(self._participations()), ["p1"])

    def test_roster_change_applies_to_next_save(self):
        self.services.persistence.set_selected_players("m1", ["p2", "p4"])
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid(), "p4": full_grid()})
        summary = self.attendance.update_attendance("m1", request)
        self.assertEqual(summary.participations_count, 1)
        self.assertEqual(list(self._participations()), ["p4"])

    def test_explicit_roster_overrides_stored_roster(self):
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid(), "p4": full_grid()})
        summary = self.attendance.update_attendance("m1", request, selected_player_ids=["p4"])
        self.assertEqual(summary.participations_count, 1)
        self.assertEqual(list(self._participations()), ["p4"])

    def test_stale_version_is_rejected_and_rows_unchanged(self):
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid()})
        summary = self.attendance.update_attendance("m1", request, expected_version=0)
        self.assertEqual(summary.attendance_version, 1)

        with self.assertRaises(ConflictError) as ctx:
            self.attendance.update_attendance(
                "m1",
                AttendanceUpdateRequest(attendance_data={"p2": full_grid()}),
                expected_version=0,
            )
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(list(self._participations()), ["p1"])

    def test_save_keeps_overrides(self):
        request = AttendanceUpdateRequest(attendance_data={"p1": full_grid()})
        self.attendance.update_attendance("m1", request)
        self.services.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))

        self.attendance.update_attendance("m1", request)

        breakdown = self.services.fees.get_fee_breakdown("m1")
        player = breakdown.players[0]
        self.assertEqual(player.calculated_fees.video_fee, 6)
        self.assertEqual(player.final_fees.video_fee, 5)

    def test_unknown_match(self):
        with self.assertRaises(NotFoundError):
            self.attendance.update_attendance("nope", AttendanceUpdateRequest())
        with self.assertRaises(NotFoundError):
            self.attendance.get_attendance_data("nope")

    def test_get_attendance_data_summarizes_events(self):
        request = AttendanceUpdateRequest(
            attendance_data={"p1": full_grid(), "p2": full_grid()},
            events=[
                MatchEvent("p1", "GOAL", 5),
                MatchEvent("p1", "PENALTY_GOAL", 50),
                MatchEvent("p2", "ASSIST", 5),
                MatchEvent("p2", "YELLOW_CARD", 70),
            ],
        )
        self.attendance.update_attendance("m1", request)

        data = self.attendance.get_attendance_data("m1")
        self.assertEqual(data["totalParticipants"], 2)
        self.assertEqual(data["totalEvents"], 4)
        self.assertEqual(data["eventsSummary"]["p1"], {"goals": 2, "assists": 0})
        self.assertEqual(data["eventsSummary"]["p2"], {"goals": 0, "assists": 1})
        self.assertEqual(data["attendanceData"]["p1"], full_grid().to_dict())
        self.assertEqual([p["name"] for p in data["selectedPlayers"]], ["Alice", "Bob", "Carol"])
        self.assertEqual(data["attendanceVersion"], 1)

    def test_validate_uses_supplied_roster(self):
        grids = {
            "p1": full_grid(goalkeeper_cells=[(1, 1)]),
            "p4": full_grid(goalkeeper_cells=[(1, 1)]),
        }

        stored_roster = self.attendance.validate_attendance_data("m1", grids)
        self.assertEqual(list(stored_roster.resolved_data), ["p1"])
        self.assertEqual(stored_roster.conflicts, [])

        supplied = self.attendance.validate_attendance_data("m1", grids, selected_player_ids=["p1", "p4"])
        self.assertEqual(list(supplied.resolved_data), ["p1", "p4"])
        self.assertEqual(len(supplied.conflicts), 1)
        self.assertEqual(supplied.conflicts[0].to_dict()["newGoalkeeperName"], "Dave")
        self.assertEqual(self._participations(), {})

    def test_preview_goalkeeper_conflicts(self):
        conflicts = self.attendance.preview_goalkeeper_conflicts("m1", {
            "p1": full_grid(goalkeeper_cells=[(2, 2)]),
            "p2": full_grid(goalkeeper_cells=[(2, 2)]),
        })
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].to_dict()["existingGoalkeeperName"], "Alice")
        self.assertEqual(conflicts[0].to_dict()["newGoalkeeperName"], "Bob")
        self.assertEqual(self._participations(), {})


class TestAttendanceTransactionTimeout(unittest.TestCase):
    """A slow transaction is rolled back."""

    def test_timeout_rolls_back(self):
        ticks = itertools.count(start=0, step=10)
        services = build_services(transaction_timeout=5, clock=lambda: next(ticks))
        seed_match(services.persistence)

        with self.assertRaises(PersistenceTimeoutError) as ctx:
            services.persistence.replace_match_attendance(
                "m1",
                [{"player_id": "p1", "attendance_data": full_grid().to_dict()}],
                [],
            )
        self.assertEqual(ctx.exception.code, "TRANSACTION_TIMEOUT")

        with services.persistence.session_scope() as session:
            self.assertEqual(session.execute(select(ParticipationRecord)).scalars().all(), [])
            self.assertEqual(session.get(MatchRecord, "m1").attendance_version, 0)


if __name__ == "__main__":
    unittest.main()

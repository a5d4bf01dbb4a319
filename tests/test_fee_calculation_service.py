"""
Unit tests for FeeCalculationService.

Tests recalculation, override preservation, override application and
removal, and match cost updates.
"""
import unittest
from unittest import mock

from sqlalchemy import select

from matchfees.models import (
    AttendanceUpdateRequest, FeeOverride, FeeOverrideRecord, MatchRecord, ParticipationRecord,
    PlayerAttendance
)
from matchfees.services import NotFoundError, ValidationError

from support import build_services, four_and_a_half_parts, full_grid, seed_match


class TestFeeCalculationService(unittest.TestCase):
    """Test cases for override-aware fee calculation."""

    def setUp(self) -> None:
        self.services = build_services()
        seed_match(self.services.persistence)
        self.fees = self.services.fees
        self.services.attendance.update_attendance("m1", AttendanceUpdateRequest(attendance_data={
            "p1": full_grid(),
            "p2": four_and_a_half_parts(),
            "p3": full_grid(is_late_arrival=True),
        }))

    def _override_rows(self):
        with self.services.persistence.session_scope() as session:
            return session.execute(select(FeeOverrideRecord)).scalars().all()

    def test_recalculate_all_fees_without_overrides(self):
        breakdown = self.fees.recalculate_all_fees("m1")

        self.assertEqual(breakdown.total_participants, 3)
        self.assertAlmostEqual(breakdown.fee_coefficient, 250 / 90)
        players = {p.player_id: p for p in breakdown.players}
        self.assertEqual(players["p1"].player_name, "Alice")
        self.assertEqual(players["p1"].final_fees.to_dict(), {
            "fieldFee": 25, "videoFee": 6, "lateFee": 0, "totalFee": 31
        })
        self.assertEqual(players["p3"].final_fees.to_dict()["lateFee"], 10)
        self.assertEqual(breakdown.total_calculated_fees, breakdown.total_final_fees)
        self.assertEqual(
            breakdown.total_final_fees,
            sum(p.final_fees.rounded_total() for p in breakdown.players)
        )

    def test_override_survives_recalculation(self):
        self.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))
        breakdown = self.fees.recalculate_all_fees("m1")

        p1 = next(p for p in breakdown.players if p.player_id == "p1")
        self.assertEqual(p1.calculated_fees.video_fee, 6)
        self.assertEqual(p1.final_fees.video_fee, 5)
        self.assertEqual(p1.final_fees.field_fee, 25)
        self.assertEqual(p1.final_fees.to_dict()["totalFee"], 30)
        self.assertEqual(breakdown.total_final_fees, breakdown.total_calculated_fees - 1)

        rows = self._override_rows()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].video_fee_override, 5)

    def test_zero_override_is_applied(self):
        breakdown = self.fees.apply_manual_override("m1", "p3", FeeOverride(late_fee_override=0))
        self.assertEqual(breakdown.calculated_fees.late_fee, 10)
        self.assertEqual(breakdown.final_fees.late_fee, 0)

    def test_override_is_replaced_wholesale(self):
        self.fees.apply_manual_override(
            "m1", "p1", FeeOverride(field_fee_override=10, video_fee_override=1, notes="first")
        )
        breakdown = self.fees.apply_manual_override("m1", "p1", FeeOverride(late_fee_override=3))

        self.assertIsNone(breakdown.overrides.field_fee_override)
        self.assertIsNone(breakdown.overrides.notes)
        self.assertEqual(breakdown.final_fees.to_dict(), {
            "fieldFee": 25, "videoFee": 6, "lateFee": 3, "totalFee": 34
        })
        self.assertEqual(len(self._override_rows()), 1)

    def test_apply_override_leaves_participation_untouched(self):
        with self.services.persistence.session_scope() as session:
            before = session.execute(
                select(ParticipationRecord.total_fee_calculated).where(ParticipationRecord.player_id == "p1")
            ).scalar_one()
        self.fees.apply_manual_override("m1", "p1", FeeOverride(field_fee_override=0))
        with self.services.persistence.session_scope() as session:
            after = session.execute(
                select(ParticipationRecord.total_fee_calculated).where(ParticipationRecord.player_id == "p1")
            ).scalar_one()
        self.assertEqual(before, after)

    def test_apply_override_without_participation(self):
        with self.assertRaises(NotFoundError):
            self.fees.apply_manual_override("m1", "p4", FeeOverride(video_fee_override=1))
        self.assertEqual(self._override_rows(), [])

    def test_remove_override(self):
        self.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))
        breakdown = self.fees.remove_override("m1", "p1")

        self.assertIsNone(breakdown.overrides)
        self.assertEqual(breakdown.final_fees.video_fee, 6)
        self.assertEqual(self._override_rows(), [])

    def test_remove_override_without_participation(self):
        self.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))
        with self.assertRaises(NotFoundError) as ctx:
            self.fees.remove_override("m1", "p4")
        self.assertEqual(ctx.exception.code, "NOT_FOUND")
        self.assertEqual(len(self._override_rows()), 1)

    def test_get_fee_breakdown_matches_recalculation(self):
        self.fees.apply_manual_override("m1", "p2", FeeOverride(field_fee_override=7.5))
        recalculated = self.fees.recalculate_all_fees("m1").to_dict()
        stored = self.fees.get_fee_breakdown("m1").to_dict()
        self.assertEqual(recalculated, stored)

    def test_calculate_player_fees_preview(self):
        breakdown = self.fees.calculate_player_fees("m1", "p4", four_and_a_half_parts())
        self.assertEqual(breakdown.player_name, "Dave")
        self.assertEqual(breakdown.total_time, 4.5)
        self.assertEqual(breakdown.calculated_fees.video_fee, 4)
        self.assertIsNone(breakdown.overrides)
        self.assertEqual(breakdown.final_fees.video_fee, 4)

        with self.assertRaises(NotFoundError):
            self.fees.calculate_player_fees("m1", "nobody", PlayerAttendance.full())
        with self.assertRaises(NotFoundError):
            self.fees.calculate_player_fees("nope", "p1", PlayerAttendance.full())

    def test_calculate_player_fees_merges_stored_override(self):
        self.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))

        breakdown = self.fees.calculate_player_fees("m1", "p1", full_grid())

        self.assertEqual(breakdown.calculated_fees.video_fee, 6)
        self.assertEqual(breakdown.overrides.video_fee_override, 5)
        self.assertEqual(breakdown.final_fees.video_fee, 5)
        self.assertEqual(breakdown.final_fees.field_fee, 25)
        self.assertEqual(breakdown.to_dict()["finalFees"]["videoFee"], 5)

    def test_update_match_costs_recalculates(self):
        self.fees.apply_manual_override("m1", "p1", FeeOverride(video_fee_override=5))
        breakdown = self.fees.update_match_costs("m1", field_fee_total=400, water_fee_total=50)

        self.assertAlmostEqual(breakdown.fee_coefficient, 5.0)
        p1 = next(p for p in breakdown.players if p.player_id == "p1")
        self.assertEqual(p1.calculated_fees.field_fee, 45)
        self.assertEqual(p1.final_fees.video_fee, 5)

    def test_update_match_costs_rejects_negative_values(self):
        with self.assertRaises(ValidationError) as ctx:
            self.fees.update_match_costs("m1", field_fee_total=-1, late_fee_rate=-2)
        self.assertEqual(len(ctx.exception.details), 2)

    def test_update_match_costs_rejects_non_finite_values(self):
        with self.assertRaises(ValidationError) as ctx:
            self.fees.update_match_costs(
                "m1", field_fee_total=float("inf"), video_fee_per_unit=float("nan")
            )
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")
        self.assertEqual(ctx.exception.details, [
            "Field fee must be a finite number",
            "Video fee per unit must be a finite number",
        ])
        breakdown = self.fees.get_fee_breakdown("m1")
        self.assertAlmostEqual(breakdown.fee_coefficient, 250 / 90)

    def test_failed_recalculation_keeps_previous_costs(self):
        with mock.patch.object(self.fees, "_recalculate", side_effect=RuntimeError("recalculation failed")):
            with self.assertRaises(RuntimeError):
                self.fees.update_match_costs("m1", field_fee_total=400)

        with self.services.persistence.session_scope() as session:
            self.assertEqual(session.get(MatchRecord, "m1").field_fee_total, 200)

    def test_match_rates_fall_back_to_settings(self):
        self.services.persistence.save_setting("VIDEO_FEE_RATE", "3")
        breakdown = self.fees.recalculate_all_fees("m1")
        p1 = next(p for p in breakdown.players if p.player_id == "p1")
        self.assertEqual(p1.calculated_fees.video_fee, 9)

        self.fees.update_match_costs("m1", video_fee_per_unit=1)
        p1 = next(p for p in self.fees.get_fee_breakdown("m1").players if p.player_id == "p1")
        self.assertEqual(p1.calculated_fees.video_fee, 3)

    def test_unknown_match(self):
        with self.assertRaises(NotFoundError):
            self.fees.recalculate_all_fees("nope")
        with self.assertRaises(NotFoundError):
            self.fees.get_fee_breakdown("nope")


if __name__ == "__main__":
    unittest.main()

"""Tests for the cached settings provider."""

import pytest

from matchfees.services import NotFoundError, SettingsService

from support import build_services


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self, values):
        self.values = values
        self.calls = 0
        self.fail = False

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("database unavailable")
        return dict(self.values)


def test_defaults_without_stored_values():
    settings = SettingsService(loader=lambda: {})
    assert settings.get_base_fee_rates() == {"videoFeeRate": 2.0, "lateFeeRate": 10.0}


def test_stored_values_and_legacy_keys():
    settings = SettingsService(loader=lambda: {"base_video_fee_rate": "4", "LATE_FEE_RATE": "12"})
    assert settings.get_video_fee_rate() == 4.0
    assert settings.get_late_fee_rate() == 12.0
    assert settings.get_setting("base_late_fee_rate") == "12"


def test_canonical_key_wins_over_legacy_alias():
    settings = SettingsService(loader=lambda: {"VIDEO_FEE_RATE": "5", "base_video_fee_rate": "4"})
    assert settings.get_video_fee_rate() == 5.0


def test_unknown_key():
    settings = SettingsService(loader=lambda: {})
    with pytest.raises(NotFoundError):
        settings.get_setting("NO_SUCH_KEY")
    assert settings.get_setting("NO_SUCH_KEY", default="x") == "x"


def test_cache_refreshes_only_after_ttl():
    clock = FakeClock()
    loader = CountingLoader({"VIDEO_FEE_RATE": "3"})
    settings = SettingsService(loader=loader, ttl_seconds=300, clock=clock)

    assert settings.get_video_fee_rate() == 3.0
    loader.values["VIDEO_FEE_RATE"] = "6"
    clock.now = 299
    assert settings.get_video_fee_rate() == 3.0
    assert loader.calls == 1

    clock.now = 300
    assert settings.get_video_fee_rate() == 6.0
    assert loader.calls == 2


def test_clear_cache_forces_reload():
    loader = CountingLoader({})
    settings = SettingsService(loader=loader, clock=FakeClock())
    settings.get_late_fee_rate()
    settings.clear_cache()
    settings.get_late_fee_rate()
    assert loader.calls == 2


def test_loader_failure_keeps_previous_values():
    clock = FakeClock()
    loader = CountingLoader({"LATE_FEE_RATE": "15"})
    settings = SettingsService(loader=loader, ttl_seconds=10, clock=clock)
    assert settings.get_late_fee_rate() == 15.0

    loader.fail = True
    clock.now = 20
    assert settings.get_late_fee_rate() == 15.0
    assert loader.calls == 2


def test_non_numeric_value_falls_back_to_default():
    settings = SettingsService(loader=lambda: {"VIDEO_FEE_RATE": "two"})
    assert settings.get_video_fee_rate() == 2.0


def test_database_backed_settings():
    services = build_services()
    services.persistence.save_setting("LATE_FEE_RATE", 25, description="Late arrival fee")
    assert services.settings.get_late_fee_rate() == 25.0
    services.persistence.save_setting("LATE_FEE_RATE", 30)
    assert services.settings.get_late_fee_rate() == 30.0

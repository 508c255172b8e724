"""Tests for the one-shot location recovery task."""

from unittest.mock import Mock

import pytest

from conftest import DARK_LAF, LIGHT_LAF, FakeNightTime, FakePlasma, window
from nightsync_core.exceptions import SystemdError
from nightsync_core.modes import Mode
from nightsync_core.recovery import LocationRecoveryTask, RecoveryOutcome
from nightsync_core.schedule import ScheduleResolver
from nightsync_core.systemd import KNIGHTTIME_SERVICE_NAME

NOW = 1_760_000_000.0
NIGHT = [window(int(NOW * 1000) + 1000, int(NOW * 1000) + 2000)]
DAY = [window(int(NOW * 1000) - 1000, int(NOW * 1000) + 1000)]


@pytest.fixture
def make_task(make_applier, stamp):
    def _make(client, plasma, applied=None, systemd=None):
        applier = make_applier()
        if applied is not None:
            applier.apply(applied, initial=True)
        task = LocationRecoveryTask(
            resolver=ScheduleResolver(client, clock=lambda: NOW),
            applier=applier,
            plasma=plasma,
            systemd=systemd or Mock(),
            stamp=stamp,
            location_attempts=3,
            location_interval=0,
            settle_delay=0,
            schedule_attempts=3,
            schedule_interval=0,
        )
        return task

    return _make


class TestRun:
    def test_corrects_wrong_fallback(self, make_task, stamp):
        """Watcher fell back to light; the fresh schedule says night."""
        plasma = FakePlasma(laf=LIGHT_LAF, automatic=True)
        systemd = Mock()
        task = make_task(FakeNightTime(NIGHT), plasma, applied=Mode.LIGHT, systemd=systemd)

        outcome = task.run()

        assert outcome is RecoveryOutcome.CORRECTED
        systemd.restart_unit.assert_called_once_with(KNIGHTTIME_SERVICE_NAME)
        assert plasma.laf == DARK_LAF
        assert plasma.automatic is True
        assert task.applier.applied_mode is Mode.DARK
        assert task.result.mode is Mode.DARK
        assert stamp.read() > 0

    def test_matching_mode_is_left_alone(self, make_task, stamp):
        plasma = FakePlasma(laf=LIGHT_LAF, automatic=True)
        task = make_task(FakeNightTime(DAY), plasma, applied=Mode.LIGHT)

        assert task.run() is RecoveryOutcome.UNCHANGED
        assert plasma.count("apply_look_and_feel") == 0
        assert stamp.read() == 0

    def test_no_location_gives_up(self, make_task):
        systemd = Mock()
        task = make_task(FakeNightTime(NIGHT, location=False), FakePlasma(automatic=True), systemd=systemd)

        assert task.run() is RecoveryOutcome.NO_LOCATION
        systemd.restart_unit.assert_not_called()

    def test_empty_schedule_gives_up(self, make_task):
        task = make_task(FakeNightTime([]), FakePlasma(automatic=True), applied=Mode.LIGHT)

        assert task.run() is RecoveryOutcome.NO_SCHEDULE
        assert task.applier.applied_mode is Mode.LIGHT

    def test_manual_mode_is_not_overridden(self, make_task):
        plasma = FakePlasma(laf=LIGHT_LAF, automatic=False)
        task = make_task(FakeNightTime(NIGHT), plasma, applied=Mode.LIGHT)

        assert task.run() is RecoveryOutcome.AUTO_OFF
        assert task.applier.applied_mode is Mode.LIGHT

    def test_correction_uses_desktop_theme_packages(self, make_task):
        """Plasma's own day/night packages win over the configured ones."""
        plasma = FakePlasma(
            laf="org.example.day", automatic=True, defaults=("org.example.day", "org.example.night")
        )
        task = make_task(FakeNightTime(NIGHT), plasma, applied=Mode.LIGHT)

        assert task.run() is RecoveryOutcome.CORRECTED
        assert plasma.laf == "org.example.night"

    def test_verdict_comes_from_the_polled_schedule(self, make_task):
        """A schedule that disappears right after polling still decides the mode."""
        client = FakeNightTime(NIGHT)
        plasma = FakePlasma(laf=LIGHT_LAF, automatic=True)
        task = make_task(client, plasma, applied=Mode.LIGHT)
        real_subscribe = client.subscribe

        def subscribe_once():
            subscription = real_subscribe()
            client.windows = ()
            return subscription

        client.subscribe = subscribe_once

        assert task.run() is RecoveryOutcome.CORRECTED
        assert client.subscribed == 1
        assert task.applier.applied_mode is Mode.DARK

    def test_restart_failure(self, make_task):
        systemd = Mock()
        systemd.restart_unit.side_effect = SystemdError("Failed to restart")
        task = make_task(FakeNightTime(NIGHT), FakePlasma(automatic=True), systemd=systemd)

        assert task.run() is RecoveryOutcome.FAILED

    def test_stop_cancels_polling(self, make_task):
        task = make_task(FakeNightTime(NIGHT, location=False), FakePlasma(automatic=True))
        task.stop()

        assert task.run() is RecoveryOutcome.CANCELLED


class TestThread:
    def test_runs_once_in_background(self, make_task):
        plasma = FakePlasma(laf=LIGHT_LAF, automatic=True)
        task = make_task(FakeNightTime(NIGHT), plasma, applied=Mode.LIGHT)

        task.start()
        task.start()
        task.join(timeout=5)

        assert task.outcome is RecoveryOutcome.CORRECTED
        assert plasma.count("apply_look_and_feel") == 1

    def test_unexpected_error_is_contained(self, make_task):
        plasma = FakePlasma(automatic=True)
        task = make_task(FakeNightTime(NIGHT), plasma)
        plasma.is_automatic_mode = Mock(side_effect=RuntimeError("boom"))

        task.start()
        task.join(timeout=5)

        assert task.outcome is RecoveryOutcome.FAILED

# nightsync_core/recovery.py
"""
One-shot correction for a late location fix.

knighttimed gives up for the session when GeoClue is not up yet at login,
leaving the schedule empty and the watcher on its fallback mode. This task
waits for GeoClue, restarts knighttimed, waits for a schedule and corrects
the applied mode if the fallback was wrong.
"""

import enum
import logging
import threading
from typing import Optional

from . import helpers
from .applier import AppliedResult, ThemeApplier
from .config import (
    GEOCLUE_READY_ATTEMPTS,
    GEOCLUE_READY_INTERVAL,
    GEOCLUE_SETTLE_DELAY,
    SCHEDULE_READY_ATTEMPTS,
    SCHEDULE_READY_INTERVAL,
)
from .exceptions import DependencyError, DesktopError, SystemdError, ValidationError
from .modes import mode_from_daylight
from .plasma import PlasmaHandler
from .schedule import ScheduleResolver, ScheduleWindow, resolve_daylight
from .state import ApplyStamp
from .systemd import KNIGHTTIME_SERVICE_NAME, SystemdManager

log = logging.getLogger(__name__)


class RecoveryOutcome(enum.Enum):
    CORRECTED = "corrected"
    UNCHANGED = "unchanged"
    AUTO_OFF = "auto-off"
    NO_LOCATION = "no-location"
    NO_SCHEDULE = "no-schedule"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LocationRecoveryTask:
    """Runs at most once per process, on a daemon thread."""

    def __init__(
        self,
        resolver: ScheduleResolver,
        applier: ThemeApplier,
        plasma: PlasmaHandler,
        systemd: SystemdManager,
        stamp: ApplyStamp,
        location_attempts: int = GEOCLUE_READY_ATTEMPTS,
        location_interval: float = GEOCLUE_READY_INTERVAL,
        settle_delay: float = GEOCLUE_SETTLE_DELAY,
        schedule_attempts: int = SCHEDULE_READY_ATTEMPTS,
        schedule_interval: float = SCHEDULE_READY_INTERVAL,
    ):
        self.resolver = resolver
        self.applier = applier
        self.plasma = plasma
        self.systemd = systemd
        self.stamp = stamp
        self.location_attempts = location_attempts
        self.location_interval = location_interval
        self.settle_delay = settle_delay
        self.schedule_attempts = schedule_attempts
        self.schedule_interval = schedule_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.outcome: Optional[RecoveryOutcome] = None
        self.result: Optional[AppliedResult] = None

    def start(self) -> None:
        if self._thread is not None:
            log.debug("Location recovery already started; not starting again")
            return
        self._thread = threading.Thread(
            target=self._run_safely, name="nightsync-location-recovery", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run_safely(self) -> None:
        try:
            self.outcome = self.run()
        except Exception as e:
            log.exception(f"Location recovery failed: {e}")
            self.outcome = RecoveryOutcome.FAILED

    def run(self) -> RecoveryOutcome:
        """The recovery sequence itself; blocking. Returns what happened."""
        if not helpers.retry_until(
            self.resolver.client.is_location_available,
            self.location_attempts,
            self.location_interval,
            stop_event=self._stop_event,
        ):
            if self._stop_event.is_set():
                return RecoveryOutcome.CANCELLED
            log.info(
                f"GeoClue not available after {self.location_attempts * self.location_interval:g}s, giving up"
            )
            return RecoveryOutcome.NO_LOCATION

        if self._stop_event.wait(self.settle_delay):
            return RecoveryOutcome.CANCELLED

        log.info("Restarting knighttimed to pick up GeoClue location")
        try:
            self.systemd.restart_unit(KNIGHTTIME_SERVICE_NAME)
        except (SystemdError, DependencyError) as e:
            log.warning(f"Could not restart {KNIGHTTIME_SERVICE_NAME}: {e}")
            return RecoveryOutcome.FAILED

        windows: tuple[ScheduleWindow, ...] = ()

        def schedule_ready() -> bool:
            nonlocal windows
            windows = self.resolver.fetch_schedule()
            return bool(windows)

        if not helpers.retry_until(
            schedule_ready,
            self.schedule_attempts,
            self.schedule_interval,
            stop_event=self._stop_event,
        ):
            if self._stop_event.is_set():
                return RecoveryOutcome.CANCELLED
            log.info(
                f"NightTime schedule not available after {self.schedule_attempts * self.schedule_interval:g}s, giving up"
            )
            return RecoveryOutcome.NO_SCHEDULE

        is_daylight, _ = resolve_daylight(windows, self.resolver.now_ms())
        mode = mode_from_daylight(is_daylight)
        if not self.plasma.is_automatic_mode():
            log.debug("Automatic mode is off; schedule not enforced")
            return RecoveryOutcome.AUTO_OFF
        applied = self.applier.applied_mode
        if mode is applied:
            log.debug(f"Schedule agrees with applied {mode.label} mode")
            return RecoveryOutcome.UNCHANGED

        log.info(
            f"GeoClue fix: correcting theme from {applied.label if applied else 'none'} to {mode.label}"
        )
        # The theme package switch below emits notifyChange; stamp first so
        # the watcher's listener ignores it.
        self.stamp.record()
        try:
            config = self.applier.config.with_look_and_feels(
                *self.plasma.get_default_look_and_feels()
            )
            self.plasma.apply_look_and_feel(config.laf_for(mode))
        except (DesktopError, ValidationError) as e:
            log.warning(f"Could not switch theme package: {e}")
        try:
            self.plasma.set_automatic_mode(True)
        except DesktopError as e:
            log.warning(f"Could not re-enable automatic mode: {e}")
        self.result = self.applier.apply(mode)
        self.stamp.record()
        return RecoveryOutcome.CORRECTED

# nightsync_core/watcher.py
"""
The long-running watcher.

`EventWatcher` decides the mode at startup, applies it, starts the location
recovery task, then follows Plasma's KGlobalSettings `notifyChange` signal
and re-applies whenever the desktop switches to the other theme package.
"""

import enum
import logging
import subprocess
import threading
import time
from typing import Callable, Iterator, Optional, Protocol

from . import helpers
from .applier import AppliedResult, ThemeApplier
from .config import (
    BUS_CALL_TIMEOUT,
    DEBOUNCE_SECONDS,
    NIGHTTIME_READY_ATTEMPTS,
    NIGHTTIME_READY_INTERVAL,
    RESUBSCRIBE_DELAY,
    SyncConfig,
)
from .exceptions import DesktopError, ValidationError
from .modes import Mode
from .plasma import KGLOBALSETTINGS_IFACE, KGLOBALSETTINGS_PATH, PlasmaHandler
from .recovery import LocationRecoveryTask
from .schedule import ScheduleResolver
from .state import ApplyStamp

log = logging.getLogger(__name__)

NOTIFY_MEMBER = "notifyChange"
MATCH_RULE = (
    f"type='signal',interface='{KGLOBALSETTINGS_IFACE}',"
    f"member='{NOTIFY_MEMBER}',path='{KGLOBALSETTINGS_PATH}'"
)


class WatcherState(enum.Enum):
    STARTING = "starting"
    IDLE = "idle"
    APPLYING = "applying"
    STOPPED = "stopped"


class DebounceGate:
    """
    Ignores notifications shortly after an apply: our own (kept in memory)
    or one recorded by another actor in the shared stamp file.
    """

    def __init__(
        self,
        stamp: ApplyStamp,
        window: float = DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.stamp = stamp
        self.window = window
        self._clock = clock
        self._last_self_apply = 0.0

    def mark_self_apply(self, when: Optional[float] = None) -> None:
        self._last_self_apply = self._clock() if when is None else when

    def should_ignore(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return (
            now - self._last_self_apply < self.window
            or now - self.stamp.read() < self.window
        )


class NotificationStream(Protocol):
    def lines(self) -> Iterator[str]: ...

    def close(self) -> None: ...


class DbusMonitorStream:
    """One `dbus-monitor` subscription. `lines()` ends when the monitor exits."""

    def __init__(self, match_rule: str = MATCH_RULE):
        self.match_rule = match_rule
        self._process: Optional[subprocess.Popen] = None

    def lines(self) -> Iterator[str]:
        try:
            self._process = subprocess.Popen(
                ["dbus-monitor", "--session", self.match_rule],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            log.warning(f"Could not start dbus-monitor: {e}")
            return
        try:
            with self._process.stdout:
                for line in self._process.stdout:
                    yield line.rstrip("\n")
        finally:
            self.close()

    def close(self) -> None:
        process = self._process
        if process is None:
            return
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=BUS_CALL_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()


class EventWatcher:
    """Startup, then the notification loop. `stop()` may be called from a signal handler."""

    def __init__(
        self,
        plasma: PlasmaHandler,
        resolver: ScheduleResolver,
        applier: ThemeApplier,
        debounce: DebounceGate,
        recovery: Optional[LocationRecoveryTask] = None,
        stream_factory: Callable[[], NotificationStream] = DbusMonitorStream,
        sleep: Callable[[float], None] = time.sleep,
        resubscribe_delay: float = RESUBSCRIBE_DELAY,
        ready_attempts: int = NIGHTTIME_READY_ATTEMPTS,
        ready_interval: float = NIGHTTIME_READY_INTERVAL,
    ):
        self.plasma = plasma
        self.resolver = resolver
        self.applier = applier
        self.debounce = debounce
        self.recovery = recovery
        self.stream_factory = stream_factory
        self._sleep = sleep
        self.resubscribe_delay = resubscribe_delay
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval
        self.state = WatcherState.STARTING
        self._stop_event = threading.Event()
        self._stream: Optional[NotificationStream] = None

    # --- Mode sources ---

    def current_config(self) -> SyncConfig:
        """Config with the desktop's own light/dark packages taking precedence."""
        light, dark = self.plasma.get_default_look_and_feels()
        return self.applier.config.with_look_and_feels(light, dark)

    def desktop_mode(self, config: SyncConfig) -> Optional[Mode]:
        """The mode the desktop's current theme package belongs to, if any."""
        return config.mode_for_laf(self.plasma.get_look_and_feel())

    def determine_initial_mode(self, config: SyncConfig, auto: bool) -> Mode:
        if auto:
            mode = self.resolver.resolve_mode()
            if mode is not None:
                return mode
            log.info("Schedule unavailable, using persisted theme")
            return self.desktop_mode(config) or Mode.LIGHT
        return self.desktop_mode(config) or Mode.DARK

    # --- Lifecycle ---

    def start(self) -> AppliedResult:
        """
        Loads the configuration, applies the initial mode and starts the
        recovery task.

        Raises:
            ConfigError: If the configuration is missing or incompatible.
        """
        self.state = WatcherState.STARTING
        self.applier.reload_config()
        log.info("Watcher started")

        if not helpers.retry_until(
            self.resolver.client.is_available,
            self.ready_attempts,
            self.ready_interval,
            sleep=self._sleep,
        ):
            log.info(
                f"NightTime not ready after {self.ready_attempts * self.ready_interval:g}s, proceeding anyway"
            )

        auto = self.plasma.is_automatic_mode()
        config = self.current_config()
        mode = self.determine_initial_mode(config, auto)
        laf = config.laf_for(mode)
        log.info(f"Initial theme: {laf or mode.label}")

        try:
            self.plasma.apply_look_and_feel(laf)
        except (DesktopError, ValidationError) as e:
            log.warning(f"Could not switch theme package: {e}")
        if auto:
            # plasma-apply-lookandfeel clears the flag
            try:
                self.plasma.set_automatic_mode(True)
            except DesktopError as e:
                log.warning(f"Could not re-enable automatic mode: {e}")

        result = self.applier.apply(mode, initial=True)

        if self.recovery is not None:
            self.recovery.start()
        self.state = WatcherState.IDLE
        return result

    def handle_line(self, line: str) -> Optional[AppliedResult]:
        """Processes one monitor line; returns the apply result if one ran."""
        if f"member={NOTIFY_MEMBER}" not in line:
            return None
        if self.debounce.should_ignore():
            log.debug("Notification within debounce window; ignored")
            return None
        return self._on_change()

    def _on_change(self) -> Optional[AppliedResult]:
        self.state = WatcherState.APPLYING
        try:
            config = self.current_config()
            laf = self.plasma.get_look_and_feel()
            mode = config.mode_for_laf(laf)
            if mode is None:
                log.info(f"Unknown LookAndFeel: {laf or '(unset)'}; skipping")
                return None
            if mode is self.applier.applied_mode:
                return None
            result = self.applier.apply(mode)
            self.debounce.mark_self_apply()
            return result
        finally:
            self.state = WatcherState.IDLE

    def watch(self) -> None:
        """
        Follows the notification stream until `stop()`. A stream that ends
        (session bus not ready yet, transient disconnect) is reopened after
        a short delay, indefinitely.
        """
        while not self._stop_event.is_set():
            self._stream = self.stream_factory()
            try:
                for line in self._stream.lines():
                    if self._stop_event.is_set():
                        break
                    self.handle_line(line)
            finally:
                self._stream.close()
            if self._stop_event.is_set():
                break
            log.debug(f"Notification stream closed; resubscribing in {self.resubscribe_delay:g}s")
            self._stop_event.wait(self.resubscribe_delay)
        self.state = WatcherState.STOPPED

    def run(self) -> None:
        """Startup followed by the watch loop; returns after `stop()`."""
        try:
            self.start()
            self.watch()
        finally:
            if self.recovery is not None:
                self.recovery.stop()
                self.recovery.join(timeout=BUS_CALL_TIMEOUT)
            self.state = WatcherState.STOPPED
            log.info("Watcher stopped")

    def stop(self) -> None:
        self._stop_event.set()
        stream = self._stream
        if stream is not None:
            stream.close()

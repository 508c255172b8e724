# nightsync_core/schedule.py
"""
Day/night schedule resolution against Plasma's NightTime service.

NightTime (knighttimed) computes sunrise/sunset transitions from the
location GeoClue provides. `ScheduleResolver.resolve_daylight()` answers
"is it daytime now?" with the same tie-break Plasma's own auto-switcher
uses: a transition period still counts as the mode it started from.
"""

import dataclasses
import logging
import re
import time
from typing import Callable, Optional, Sequence

from . import helpers
from .config import BUS_CALL_TIMEOUT
from .exceptions import NightSyncError, ScheduleError
from .modes import Mode, mode_from_daylight

log = logging.getLogger(__name__)

# --- NightTime D-Bus API ---
NIGHTTIME_SERVICE = "org.kde.NightTime"
NIGHTTIME_PATH = "/org/kde/NightTime/Manager"
NIGHTTIME_IFACE = "org.kde.NightTime.Manager"
GEOCLUE_SERVICE = "org.freedesktop.GeoClue2"

_COOKIE_RE = re.compile(r'"Cookie" u (\d+)')
_SCHEDULE_RE = re.compile(r"a\(xxxxx\) (\d+)((?: -?\d+)*)")


@dataclasses.dataclass(frozen=True)
class ScheduleWindow:
    """One day/night cycle; every field is milliseconds since the epoch."""

    solar_noon: int
    morning_start: int
    morning_end: int
    evening_start: int
    evening_end: int


@dataclasses.dataclass(frozen=True)
class Subscription:
    cookie: int
    windows: tuple[ScheduleWindow, ...]


def parse_subscribe_output(output: str) -> Subscription:
    """
    Parses `busctl call ... Subscribe` output, e.g.
    `a{sv} 2 "Cookie" u 7 "Schedule" a(xxxxx) 1 <five timestamps>`.

    A missing or empty schedule yields no windows; a truncated trailing
    cycle is dropped.
    """
    cookie_match = _COOKIE_RE.search(output)
    cookie = int(cookie_match.group(1)) if cookie_match else 0

    schedule_match = _SCHEDULE_RE.search(output)
    if not schedule_match:
        return Subscription(cookie, ())
    count = int(schedule_match.group(1))
    numbers = [int(n) for n in schedule_match.group(2).split()]
    windows = []
    for i in range(min(count, len(numbers) // 5)):
        windows.append(ScheduleWindow(*numbers[i * 5:i * 5 + 5]))
    return Subscription(cookie, tuple(windows))


def resolve_daylight(windows: Sequence[ScheduleWindow], now_ms: int) -> tuple[bool, bool]:
    """
    Returns (is_daylight, known) for `now_ms`.

    Windows are scanned in order. Inside [morning_end, evening_end) it is
    day, before morning_end it is night; both stop the scan. Past
    evening_end it is night unless a later window says otherwise.
    """
    is_daylight, known = True, False
    for window in windows:
        if window.morning_end <= now_ms < window.evening_end:
            return True, True
        if now_ms < window.morning_end:
            return False, True
        is_daylight, known = False, True
    return is_daylight, known


class NightTimeClient:
    """Talks to NightTime and GeoClue through busctl."""

    def _busctl(self, args: list[str]) -> tuple[int, str, str]:
        try:
            return helpers.run_command(["busctl", *args], timeout=BUS_CALL_TIMEOUT)
        except FileNotFoundError as e:
            raise ScheduleError(f"busctl not available: {e}") from e
        except NightSyncError as e:
            raise ScheduleError(str(e)) from e

    def is_available(self) -> bool:
        """Whether NightTime is registered on the user bus."""
        try:
            code, _, _ = self._busctl(["--user", "status", NIGHTTIME_SERVICE])
        except ScheduleError:
            return False
        return code == 0

    def is_location_available(self) -> bool:
        """Whether GeoClue is registered on the system bus."""
        try:
            code, _, _ = self._busctl(["--system", "status", GEOCLUE_SERVICE])
        except ScheduleError:
            return False
        return code == 0

    def subscribe(self) -> Subscription:
        """
        Raises:
            ScheduleError: If NightTime cannot be reached.
        """
        code, stdout, stderr = self._busctl(
            ["--user", "call", NIGHTTIME_SERVICE, NIGHTTIME_PATH,
             NIGHTTIME_IFACE, "Subscribe", "a{sv}", "0"]
        )
        if code != 0:
            raise ScheduleError(f"NightTime Subscribe failed: {stderr or 'no response'}")
        return parse_subscribe_output(stdout)

    def unsubscribe(self, cookie: int) -> None:
        try:
            code, _, stderr = self._busctl(
                ["--user", "call", NIGHTTIME_SERVICE, NIGHTTIME_PATH,
                 NIGHTTIME_IFACE, "Unsubscribe", "u", str(cookie)]
            )
        except ScheduleError as e:
            log.debug(f"NightTime Unsubscribe({cookie}) failed: {e}")
            return
        if code != 0:
            log.debug(f"NightTime Unsubscribe({cookie}) failed: {stderr}")


class ScheduleResolver:
    """Answers whether it is daytime now according to NightTime."""

    def __init__(
        self,
        client: Optional[NightTimeClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client or NightTimeClient()
        self._clock = clock

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def fetch_schedule(self) -> tuple[ScheduleWindow, ...]:
        """
        Subscribes, reads the schedule and always unsubscribes again.
        Returns an empty tuple when NightTime is unreachable or still
        computing.
        """
        try:
            subscription = self.client.subscribe()
        except ScheduleError as e:
            log.debug(f"Schedule unavailable: {e}")
            return ()
        try:
            return subscription.windows
        finally:
            self.client.unsubscribe(subscription.cookie)

    def resolve_daylight(self) -> tuple[bool, bool]:
        """Returns (is_daylight, known). No retries."""
        windows = self.fetch_schedule()
        is_daylight, known = resolve_daylight(windows, self.now_ms())
        if known:
            log.debug(f"Schedule says it is {'day' if is_daylight else 'night'}")
        else:
            log.debug("Schedule verdict unknown (no windows).")
        return is_daylight, known

    def resolve_mode(self) -> Optional[Mode]:
        """The mode the schedule asks for now, or None when unknown."""
        is_daylight, known = self.resolve_daylight()
        return mode_from_daylight(is_daylight) if known else None

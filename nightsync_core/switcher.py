# nightsync_core/switcher.py
"""
User-initiated mode switches (the `light`, `dark`, `auto` and `toggle`
commands). These change what the desktop shows; the running watcher picks
the change up from the desktop's notification and applies the sub-themes.
Without a running watcher the switcher applies them itself.
"""

import logging
from typing import Optional

from .applier import AppliedResult, ThemeApplier
from .config import ConfigStore, SyncConfig
from .exceptions import ConfigError, DesktopError, ValidationError
from .modes import Mode
from .plasma import PlasmaHandler
from .schedule import ScheduleResolver
from .state import ModeMarker
from .systemd import WATCHER_SERVICE_NAME, SystemdManager

log = logging.getLogger(__name__)

OSD_ICONS = {
    Mode.LIGHT: "weather-clear",
    Mode.DARK: "weather-clear-night",
    Mode.AUTO: "contrast",
}


class ModeSwitcher:
    def __init__(
        self,
        store: ConfigStore,
        plasma: PlasmaHandler,
        systemd: SystemdManager,
        resolver: ScheduleResolver,
        applier: ThemeApplier,
        marker: ModeMarker,
    ):
        self.store = store
        self.plasma = plasma
        self.systemd = systemd
        self.resolver = resolver
        self.applier = applier
        self.marker = marker

    def _config(self) -> SyncConfig:
        light, dark = self.plasma.get_default_look_and_feels()
        return self.store.load().with_look_and_feels(light, dark)

    def _write_marker(self, mode: Mode) -> None:
        try:
            self.marker.write(mode)
        except OSError as e:
            log.warning(f"Could not write mode marker: {e}")

    def switch_mode(
        self, mode: Mode, keep_auto: bool = False, silent: bool = False
    ) -> Optional[AppliedResult]:
        """
        Switches the desktop to `mode`'s theme package.

        Args:
            mode: LIGHT or DARK.
            keep_auto: Leave automatic switching enabled (used by `auto`).
            silent: Do not show the on-screen display.

        Returns:
            The apply result when the sub-themes were applied here, None
            when the watcher (or nothing) had to do it.

        Raises:
            ValidationError: If `mode` is AUTO.
            ConfigError: If the configuration is missing or incompatible,
                         or names no theme package for `mode`.
            DesktopError: If the theme package or the auto flag cannot be set.
        """
        if not mode.is_concrete:
            raise ValidationError("switch_mode() needs light or dark; use enable_auto().")
        config = self._config()
        laf = config.laf_for(mode)
        if not laf:
            raise ConfigError(f"No LookAndFeel configured for {mode.label} mode.")

        if not keep_auto:
            self._write_marker(mode)
        if not silent:
            self.plasma.show_osd(OSD_ICONS[mode], mode.label)
        log.info(f"Switching to {mode.label} theme: {laf}")

        if self.plasma.get_look_and_feel() == laf:
            # Already showing it (e.g. auto picked the same); only the flag changes
            self.plasma.set_automatic_mode(keep_auto)
            return None

        self.plasma.apply_look_and_feel(laf)
        if keep_auto:
            self.plasma.set_automatic_mode(True)

        if self.systemd.is_active(WATCHER_SERVICE_NAME):
            log.debug("Watcher service is running; it will apply the sub-themes")
            return None
        return self.applier.apply(mode)

    def enable_auto(self) -> Optional[AppliedResult]:
        """Turns on schedule-driven switching and switches to the scheduled mode now."""
        self._write_marker(Mode.AUTO)
        self.plasma.show_osd(OSD_ICONS[Mode.AUTO], Mode.AUTO.label)
        mode = self.resolver.resolve_mode()
        if mode is None:
            log.info("Schedule unavailable; assuming daytime")
            mode = Mode.LIGHT
        return self.switch_mode(mode, keep_auto=True, silent=True)

    def next_mode(self) -> Mode:
        """light -> dark -> auto -> light, from the desktop's current state."""
        if self.plasma.is_automatic_mode():
            return Mode.LIGHT
        if self.plasma.get_look_and_feel() == self._config().laf_for(Mode.DARK):
            return Mode.AUTO
        return Mode.DARK

    def toggle(self) -> Mode:
        """Advances to the next mode in the cycle and returns it."""
        mode = self.next_mode()
        if mode is Mode.AUTO:
            self.enable_auto()
        else:
            self.switch_mode(mode)
        return mode

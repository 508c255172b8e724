# nightsync_core/applier.py
"""
Applies one concrete mode to every configured subsystem.

`ThemeApplier.apply()` runs the adapters in a fixed order, isolates every
failure to its own step, and records the result in the mode marker. It is
the only writer of the in-memory applied mode.
"""

import dataclasses
import logging
import threading
import time
from typing import Callable, Mapping, Optional

from . import adapters as ad
from .config import DELAY_LAF_SETTLE, ConfigStore, SyncConfig
from .exceptions import AdapterError, ConfigError, ValidationError
from .modes import BUNDLEABLE_SUBSYSTEMS, SPLASH_DISABLED, Mode, Subsystem
from .state import ModeMarker
from .wallpaper import Surface, WallpaperManager, managed_pack_dir

log = logging.getLogger(__name__)

# Adapter for each bundleable subsystem; BUNDLEABLE_SUBSYSTEMS gives the order.
_BUNDLEABLE_ADAPTERS = {
    Subsystem.ICON: ad.ICONS,
    Subsystem.COLOR: ad.COLOR_SCHEME,
    Subsystem.STYLE: ad.PLASMA_STYLE,
    Subsystem.DECORATION: ad.DECORATION,
    Subsystem.CURSOR: ad.CURSOR,
    Subsystem.SPLASH: ad.SPLASH,
    Subsystem.APPSTYLE: ad.WIDGET_STYLE,
}


@dataclasses.dataclass
class AppliedResult:
    """What one apply cycle did, step by step."""

    mode: Mode
    initial: bool = False
    repeat: bool = False
    succeeded: list[str] = dataclasses.field(default_factory=list)
    failed: list[str] = dataclasses.field(default_factory=list)
    skipped: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class ThemeApplier:
    """Runs the per-subsystem adapters for a mode, best effort."""

    def __init__(
        self,
        store: ConfigStore,
        adapters: Mapping[str, ad.SubsystemAdapter],
        wallpapers: Optional[WallpaperManager],
        marker: ModeMarker,
        config: Optional[SyncConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        settle_delay: float = DELAY_LAF_SETTLE,
    ):
        self.store = store
        self.adapters = dict(adapters)
        self.wallpapers = wallpapers
        self.marker = marker
        self._config = config
        self._sleep = sleep
        self.settle_delay = settle_delay
        self._lock = threading.Lock()
        self._applied_mode: Optional[Mode] = None

    @property
    def applied_mode(self) -> Optional[Mode]:
        return self._applied_mode

    @property
    def config(self) -> SyncConfig:
        """The most recently loaded configuration."""
        if self._config is None:
            self._config = self.store.load()
        return self._config

    def reload_config(self) -> SyncConfig:
        """Re-reads the record; keeps the last good one if it turned invalid."""
        try:
            self._config = self.store.load()
        except ConfigError as e:
            if self._config is None:
                raise
            log.warning(f"Keeping previous configuration: {e}")
        return self._config

    # --- Step runner ---

    def _run(self, result: AppliedResult, name: str, value: str) -> None:
        adapter = self.adapters.get(name)
        if adapter is None:
            result.skipped.append(name)
            return
        try:
            adapter.apply(value)
        except AdapterError as e:
            log.warning(f"{result.mode.label} mode: {e}")
            result.failed.append(name)
        except Exception as e:
            log.exception(f"{result.mode.label} mode: unexpected error in {name}: {e}")
            result.failed.append(name)
        else:
            result.succeeded.append(name)

    # --- Steps ---

    def _apply_always(self, config: SyncConfig, mode: Mode, result: AppliedResult) -> None:
        kvantum = config.setting(Subsystem.KVANTUM, mode)
        if kvantum:
            self._run(result, ad.KVANTUM, kvantum)
            self._run(result, ad.WIDGET_STYLE, ad.kvantum_style_for(mode))

        gtk = config.setting(Subsystem.GTK, mode)
        if gtk:
            self._run(result, ad.GTK, gtk)
            self._run(result, ad.FLATPAK_ICONS, config.setting(Subsystem.ICON, mode))

        konsole = config.setting(Subsystem.KONSOLE, mode)
        if konsole:
            self._run(result, ad.KONSOLE, konsole)

    def _apply_bundleable(self, config: SyncConfig, mode: Mode, result: AppliedResult) -> None:
        if config.is_bundled(mode):
            # The package switch may bring back a default splash.
            if config.setting(Subsystem.SPLASH, mode) == SPLASH_DISABLED:
                self._run(result, ad.SPLASH, SPLASH_DISABLED)
            log.debug(f"{mode.label} mode is bundled; skipping bundled subsystems")
            return

        for subsystem in BUNDLEABLE_SUBSYSTEMS:
            name = _BUNDLEABLE_ADAPTERS[subsystem]
            value = config.setting(subsystem, mode)
            if not value:
                continue
            if subsystem is Subsystem.ICON and not config.icon_changer:
                log.debug("No icon changer configured; skipping icons")
                result.skipped.append(name)
                continue
            if subsystem is Subsystem.APPSTYLE and config.setting(Subsystem.KVANTUM, mode):
                continue
            self._run(result, name, value)

    def _apply_wallpapers(self, config: SyncConfig, mode: Mode, result: AppliedResult) -> None:
        if not config.wallpaper_enabled or self.wallpapers is None:
            return
        pack_dir = managed_pack_dir(config.wallpaper_base)
        for surface in Surface:
            name = f"wallpaper:{surface.value}"
            try:
                if not self.wallpapers.is_managed(surface, pack_dir):
                    log.info(f"{surface.value} wallpaper was changed by the user; leaving it")
                    result.skipped.append(name)
                    continue
                if self.wallpapers.apply(surface, mode, pack_dir):
                    result.succeeded.append(name)
                else:
                    result.skipped.append(name)
            except AdapterError as e:
                log.warning(f"{mode.label} mode: {e}")
                result.failed.append(name)
            except Exception as e:
                log.exception(f"{mode.label} mode: unexpected error in {name}: {e}")
                result.failed.append(name)

    def _write_marker(self, mode: Mode) -> None:
        try:
            self.marker.write(mode)
        except OSError as e:
            log.warning(f"Could not write mode marker {self.marker.path}: {e}")

    # --- Public ---

    def apply(self, mode: Mode, initial: bool = False, force: bool = False) -> AppliedResult:
        """
        Applies `mode` to every configured subsystem.

        Re-applying the mode that is already applied only re-asserts the
        unconditional subsystems (always-apply and login theme) unless
        `force` is set. `initial` suppresses the browser broadcast.

        Never raises for subsystem failures; see the returned result.

        Raises:
            ValidationError: If `mode` is AUTO.
        """
        if not mode.is_concrete:
            raise ValidationError("Cannot apply auto mode; resolve it to light or dark first.")

        with self._lock:
            config = self.reload_config()
            repeat = not force and mode is self._applied_mode
            result = AppliedResult(mode=mode, initial=initial, repeat=repeat)
            log.info(
                f"Applying {mode.label} mode"
                + (" (initial)" if initial else "")
                + (" (already applied)" if repeat else "")
            )

            # Let the LookAndFeel finish writing before overriding its keys
            self._sleep(self.settle_delay)

            self._apply_always(config, mode, result)
            if not repeat:
                self._apply_bundleable(config, mode, result)

            sddm = config.setting(Subsystem.SDDM, mode)
            if sddm:
                self._run(result, ad.LOGIN_THEME, sddm)

            if not repeat:
                self._apply_wallpapers(config, mode, result)
                if not initial:
                    self._run(result, ad.BROWSER, mode.value)
                script = config.setting(Subsystem.SCRIPT, mode)
                if script:
                    self._run(result, ad.SCRIPT, script)
                self._run(result, ad.REFRESH, "")

            self._applied_mode = mode
            self._write_marker(mode)

        if result.failed:
            log.warning(f"Switched to {mode.config_suffix} mode with failures: {', '.join(result.failed)}")
        else:
            log.info(f"Switched to {mode.config_suffix} mode")
        return result

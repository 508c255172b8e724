# nightsync_core/api.py
"""
Public facade of nightsync_core: wires the real collaborators together and
exposes the operations the CLI calls.
"""

import logging
from typing import Any, Optional, Union

from . import adapters as ad
from . import config as cfg
from . import exceptions as exc
from . import helpers
from .applier import AppliedResult, ThemeApplier
from .modes import Mode
from .plasma import PlasmaHandler
from .recovery import LocationRecoveryTask
from .schedule import ScheduleResolver
from .state import ApplyStamp, ModeMarker
from .switcher import ModeSwitcher
from .systemd import WATCHER_SERVICE_NAME, SystemdManager
from .wallpaper import WallpaperManager
from .watcher import DebounceGate, EventWatcher

log = logging.getLogger(__name__)


# --- Builders ---


def build_applier(
    store: Optional[cfg.ConfigStore] = None,
    plasma: Optional[PlasmaHandler] = None,
    systemd: Optional[SystemdManager] = None,
) -> ThemeApplier:
    """
    Raises:
        ConfigError: If the configuration is missing or incompatible.
    """
    store = store or cfg.ConfigStore()
    plasma = plasma or PlasmaHandler()
    systemd = systemd or SystemdManager()
    config = store.load()
    return ThemeApplier(
        store=store,
        adapters=ad.build_default_adapters(plasma, systemd, config.icon_changer),
        wallpapers=WallpaperManager(plasma),
        marker=ModeMarker(),
        config=config,
    )


def build_watcher(store: Optional[cfg.ConfigStore] = None) -> EventWatcher:
    """
    Raises:
        DependencyError: If a required Plasma or D-Bus tool is missing.
        ConfigError: If the configuration is missing or incompatible.
    """
    helpers.check_dependencies(cfg.WATCHER_DEPENDENCIES)
    plasma = PlasmaHandler()
    systemd = SystemdManager()
    resolver = ScheduleResolver()
    stamp = ApplyStamp()
    applier = build_applier(store, plasma, systemd)
    recovery = LocationRecoveryTask(resolver, applier, plasma, systemd, stamp)
    return EventWatcher(
        plasma=plasma,
        resolver=resolver,
        applier=applier,
        debounce=DebounceGate(stamp),
        recovery=recovery,
    )


def _build_switcher() -> ModeSwitcher:
    store = cfg.ConfigStore()
    plasma = PlasmaHandler()
    systemd = SystemdManager()
    return ModeSwitcher(
        store=store,
        plasma=plasma,
        systemd=systemd,
        resolver=ScheduleResolver(),
        applier=build_applier(store, plasma, systemd),
        marker=ModeMarker(),
    )


# --- Operations ---


def run_watcher(watcher: Optional[EventWatcher] = None) -> None:
    """
    Runs the watcher until it is stopped.

    Raises:
        ConfigError: If the configuration is missing or incompatible.
    """
    watcher = watcher or build_watcher()
    watcher.run()


def switch_mode(
    mode: Union[str, Mode], keep_auto: bool = False, silent: bool = False
) -> Optional[AppliedResult]:
    """
    Switches the desktop to light or dark mode and turns automatic mode off
    (unless `keep_auto`).

    Raises:
        ValidationError: If mode is not light or dark.
        ConfigError: If the configuration is missing or incompatible.
        DesktopError: If Plasma rejects the switch.
    """
    mode = Mode.parse(mode) if isinstance(mode, str) else mode
    log.info(f"API: Switching to mode '{mode}'...")
    return _build_switcher().switch_mode(mode, keep_auto=keep_auto, silent=silent)


def enable_auto() -> Optional[AppliedResult]:
    log.info("API: Enabling automatic mode...")
    return _build_switcher().enable_auto()


def toggle() -> Mode:
    return _build_switcher().toggle()


def get_status() -> dict[str, Any]:
    """
    Retrieves the current status of nightsync.

    Errors within components are recorded in the dictionary; this call does
    not raise for them.
    """
    log.debug("API: Getting status...")
    store = cfg.ConfigStore()
    plasma = PlasmaHandler()
    status: dict[str, Any] = {
        "config": {"path": str(store.config_file), "valid": False, "error": None},
        "marker": None,
        "desktop": {"look_and_feel": None, "mode": None, "automatic": False},
        "schedule": {"known": False, "mode": None},
        "watcher": {"service": WATCHER_SERVICE_NAME, "active": False},
    }

    config = None
    try:
        config = store.load()
        status["config"]["valid"] = True
    except exc.ConfigError as e:
        status["config"]["error"] = str(e)

    marker = ModeMarker().read()
    status["marker"] = marker.value if marker else None

    laf = plasma.get_look_and_feel()
    status["desktop"]["look_and_feel"] = laf or None
    status["desktop"]["automatic"] = plasma.is_automatic_mode()
    if config is not None:
        config = config.with_look_and_feels(*plasma.get_default_look_and_feels())
        mode = config.mode_for_laf(laf)
        status["desktop"]["mode"] = mode.value if mode else None

    scheduled = ScheduleResolver().resolve_mode()
    status["schedule"]["known"] = scheduled is not None
    status["schedule"]["mode"] = scheduled.value if scheduled else None

    status["watcher"]["active"] = SystemdManager().is_active(WATCHER_SERVICE_NAME)
    return status

# nightsync_core/plasma.py
"""
KDE Plasma desktop interaction for nightsync.

This module provides the `PlasmaHandler` class, which encapsulates reads and
writes of Plasma's own settings (kdeglobals and friends, via kreadconfig6 /
kwriteconfig6), switching the global theme package, and emitting session
bus signals with dbus-send.
"""

import logging
from typing import Optional, Sequence

from . import helpers
from .config import BUS_CALL_TIMEOUT, SUDO_TIMEOUT
from .exceptions import DesktopError, NightSyncError, ValidationError

log = logging.getLogger(__name__)

# --- Plasma Constants ---
KREADCONFIG = "kreadconfig6"
KWRITECONFIG = "kwriteconfig6"
KDEGLOBALS = "kdeglobals"
KDE_GROUP = "KDE"
LAF_KEY = "LookAndFeelPackage"
LAF_LIGHT_KEY = "DefaultLightLookAndFeel"
LAF_DARK_KEY = "DefaultDarkLookAndFeel"
AUTO_LAF_KEY = "AutomaticLookAndFeel"

KGLOBALSETTINGS_PATH = "/KGlobalSettings"
KGLOBALSETTINGS_IFACE = "org.kde.KGlobalSettings"


def _group_args(groups: Sequence[str]) -> list[str]:
    args: list[str] = []
    for group in groups:
        args.extend(["--group", group])
    return args


class PlasmaHandler:
    """Handles interactions with Plasma settings and the session bus."""

    def read_config(
        self, file: str, groups: Sequence[str], key: str, default: str = ""
    ) -> str:
        """Reads one key with kreadconfig6. Returns `default` when unreadable."""
        cmd = [KREADCONFIG, "--file", file, *_group_args(groups), "--key", key]
        try:
            code, stdout, _ = helpers.run_command(cmd, capture=True)
        except (FileNotFoundError, NightSyncError) as e:
            log.debug(f"Could not read {file} {list(groups)} {key}: {e}")
            return default
        if code != 0 or not stdout:
            return default
        return stdout

    def write_config(
        self,
        file: str,
        groups: Sequence[str],
        key: str,
        value: str,
        sudo: bool = False,
    ) -> None:
        cmd = [KWRITECONFIG, "--file", file, *_group_args(groups), "--key", key, value]
        if sudo:
            cmd = ["sudo", "-n", *cmd]
        try:
            code, _, stderr = helpers.run_command(
                cmd, capture=True, timeout=SUDO_TIMEOUT if sudo else BUS_CALL_TIMEOUT
            )
        except (FileNotFoundError, NightSyncError) as e:
            raise DesktopError(f"Failed to write {file} {key}: {e}") from e
        if code != 0:
            raise DesktopError(f"Failed to write {file} {key}={value!r}: {stderr}")

    # --- Global theme package ---

    def get_look_and_feel(self) -> str:
        return self.read_config(KDEGLOBALS, [KDE_GROUP], LAF_KEY)

    def get_default_look_and_feels(self) -> tuple[str, str]:
        """The light and dark packages Plasma's own auto-switcher uses."""
        return (
            self.read_config(KDEGLOBALS, [KDE_GROUP], LAF_LIGHT_KEY),
            self.read_config(KDEGLOBALS, [KDE_GROUP], LAF_DARK_KEY),
        )

    def is_automatic_mode(self) -> bool:
        return self.read_config(KDEGLOBALS, [KDE_GROUP], AUTO_LAF_KEY) == "true"

    def set_automatic_mode(self, enabled: bool) -> None:
        self.write_config(
            KDEGLOBALS, [KDE_GROUP], AUTO_LAF_KEY, "true" if enabled else "false"
        )

    def apply_look_and_feel(self, laf: str) -> None:
        """
        Switches the global theme package. Plasma clears AutomaticLookAndFeel
        as a side effect; callers re-assert it when needed.
        """
        if not laf:
            raise ValidationError("LookAndFeel package name cannot be empty.")
        log.info(f"Applying LookAndFeel package: {laf}")
        try:
            code, _, stderr = helpers.run_command(["plasma-apply-lookandfeel", "-a", laf])
        except (FileNotFoundError, NightSyncError) as e:
            raise DesktopError(f"Failed to apply LookAndFeel '{laf}': {e}") from e
        if code != 0:
            raise DesktopError(f"Failed to apply LookAndFeel '{laf}': {stderr}")

    def get_icon_theme(self) -> str:
        return self.read_config(KDEGLOBALS, ["Icons"], "Theme")

    # --- Session bus ---

    def send_signal(self, path: str, member: str, *args: str) -> None:
        cmd = ["dbus-send", "--session", "--type=signal", path, member, *args]
        try:
            code, _, stderr = helpers.run_command(cmd, capture=True)
        except (FileNotFoundError, NightSyncError) as e:
            raise DesktopError(f"dbus-send {member} failed: {e}") from e
        if code != 0:
            raise DesktopError(f"dbus-send {member} failed: {stderr}")

    def force_refresh(self) -> None:
        self.send_signal(KGLOBALSETTINGS_PATH, f"{KGLOBALSETTINGS_IFACE}.forceRefresh")

    def show_osd(self, icon: str, text: str) -> None:
        """Best-effort on-screen display hint; never raises."""
        qdbus = find_qdbus()
        if qdbus is None:
            return
        cmd = [
            qdbus, "org.freedesktop.Notifications", "/org/kde/osdService",
            "org.kde.osdService.showText", icon, text,
        ]
        try:
            helpers.run_command(cmd, capture=True, timeout=BUS_CALL_TIMEOUT)
        except (FileNotFoundError, NightSyncError) as e:
            log.debug(f"OSD not shown: {e}")


def find_qdbus() -> Optional[str]:
    for candidate in ("qdbus6", "qdbus"):
        if helpers.command_exists(candidate):
            return candidate
    return None


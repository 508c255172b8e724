# nightsync_core/wallpaper.py
"""
Manages the wallpaper of the three surfaces nightsync keeps in sync with the
mode: the desktop, the lock screen and the login (SDDM) screen.

The desktop and lock screen point at one dynamic wallpaper pack (it carries
both light and dark images, Plasma picks the variant), the login screen gets
a per-mode image through a privileged helper. A surface is only written while
it still points at nightsync's own images; a user's own choice is left alone.
"""

import configparser
import enum
import logging
import os
import pathlib
from typing import Optional

from . import helpers
from .config import APP_NAME, HELPER_DIR, SUDO_TIMEOUT
from .exceptions import AdapterError, DesktopError, NightSyncError
from .modes import Mode
from .plasma import PlasmaHandler

log = logging.getLogger(__name__)

APPLETSRC = pathlib.Path.home() / ".config" / "plasma-org.kde.plasma.desktop-appletsrc"
LOCKSCREEN_GROUPS = ["Greeter", "Wallpaper", "org.kde.image", "General"]
SDDM_CONF = "/etc/sddm.conf.d/kde_settings.conf"
SDDM_THEMES_DIR = pathlib.Path("/usr/share/sddm/themes")
DEFAULT_SDDM_THEME = "breeze"

class Surface(enum.Enum):
    DESKTOP = "desktop"
    LOCKSCREEN = "lockscreen"
    LOGIN = "login"


def managed_pack_dir(wallpaper_base: pathlib.Path) -> pathlib.Path:
    return wallpaper_base / APP_NAME


class WallpaperManager:
    """Reads, checks and writes the wallpaper of each surface."""

    def __init__(
        self,
        plasma: PlasmaHandler,
        helper_dir: pathlib.Path = HELPER_DIR,
        appletsrc: pathlib.Path = APPLETSRC,
        sddm_themes_dir: pathlib.Path = SDDM_THEMES_DIR,
    ):
        self.plasma = plasma
        self.helper_dir = helper_dir
        self.appletsrc = appletsrc
        self.sddm_themes_dir = sddm_themes_dir

    # --- Reads ---

    def _desktop_image(self) -> str:
        if not self.appletsrc.is_file():
            return ""
        parser = configparser.ConfigParser(
            interpolation=None, delimiters=("=",), strict=False
        )
        parser.optionxform = str
        try:
            parser.read(self.appletsrc, encoding="utf-8")
        except (configparser.Error, OSError, UnicodeDecodeError) as e:
            log.debug(f"Could not parse {self.appletsrc}: {e}")
            return ""
        for section in parser.sections():
            if section.endswith("Wallpaper][org.kde.image][General"):
                image = parser.get(section, "Image", fallback="")
                if image:
                    return image
        return ""

    def login_theme(self) -> str:
        return self.plasma.read_config(SDDM_CONF, ["Theme"], "Current") or DEFAULT_SDDM_THEME

    def current_image(self, surface: Surface) -> str:
        """The image (or pack) a surface currently shows; '' when unset."""
        if surface is Surface.DESKTOP:
            return self._desktop_image()
        if surface is Surface.LOCKSCREEN:
            return self.plasma.read_config("kscreenlockerrc", LOCKSCREEN_GROUPS, "Image")
        theme_conf = self.sddm_themes_dir / self.login_theme() / "theme.conf.user"
        return self.plasma.read_config(str(theme_conf), ["General"], "background")

    def is_managed(self, surface: Surface, pack_dir: pathlib.Path) -> bool:
        """
        True while the surface still shows an image nightsync put there:
        the pack at `pack_dir` (desktop, lock screen) or a helper image (login).
        """
        current = self.current_image(surface)
        if surface is Surface.LOGIN:
            return not current or current.startswith(f"{self.helper_dir}/")
        path = current.removeprefix("file://").rstrip("/")
        return path == str(pack_dir) or path.startswith(f"{pack_dir}/")

    def find_login_background(self, mode: Mode) -> Optional[pathlib.Path]:
        matches = sorted(self.helper_dir.glob(f"sddm-bg-{mode.value}.*"))
        return matches[0] if matches else None

    # --- Writes ---

    def apply(self, surface: Surface, mode: Mode, pack_dir: pathlib.Path) -> bool:
        """
        Points a surface at nightsync's wallpaper for `mode`.

        Returns:
            False when there is nothing to apply (no login image or helper
            installed), True when the surface was written.

        Raises:
            AdapterError: If the write fails.
        """
        name = f"{surface.value} wallpaper"
        if surface is Surface.DESKTOP:
            log.info(f"Setting desktop wallpaper to: {pack_dir}")
            try:
                code, _, stderr = helpers.run_command(
                    ["plasma-apply-wallpaperimage", str(pack_dir)]
                )
            except (FileNotFoundError, NightSyncError) as e:
                raise AdapterError(name, str(e)) from e
            if code != 0:
                raise AdapterError(name, f"Failed to apply {pack_dir}: {stderr}")
            return True

        if surface is Surface.LOCKSCREEN:
            log.info(f"Setting lock screen wallpaper to: {pack_dir}")
            try:
                self.plasma.write_config(
                    "kscreenlockerrc", LOCKSCREEN_GROUPS, "Image", f"file://{pack_dir}"
                )
            except DesktopError as e:
                raise AdapterError(name, str(e)) from e
            return True

        helper = self.helper_dir / "set-sddm-background"
        image = self.find_login_background(mode)
        if image is None or not os.access(helper, os.X_OK):
            log.debug(f"No login background installed for {mode.label} mode.")
            return False
        log.info(f"Setting login screen background to: {image}")
        try:
            code, _, stderr = helpers.run_command(
                ["sudo", "-n", str(helper), str(image)], timeout=SUDO_TIMEOUT
            )
        except (FileNotFoundError, NightSyncError) as e:
            raise AdapterError(name, str(e)) from e
        if code != 0:
            raise AdapterError(name, f"Failed to apply {image}: {stderr}")
        return True

# nightsync_core/adapters.py
"""
Per-subsystem apply actions.

Every adapter has the same contract: `apply(value)` performs one side effect
on one visual subsystem and raises `AdapterError` when it fails. Adapters
never decide *whether* to run; `ThemeApplier` does that.
"""

import configparser
import logging
import os
import pathlib
import re
import time
from typing import Callable, Optional, Sequence

from . import helpers
from .config import DELAY_LAF_PROPAGATE, HELPER_DIR, SUDO_TIMEOUT, BUS_CALL_TIMEOUT
from .exceptions import AdapterError, DesktopError, NightSyncError, SystemdError
from .modes import SPLASH_DISABLED, Mode
from .plasma import KDE_GROUP, KDEGLOBALS, PlasmaHandler, find_qdbus
from .systemd import KSPLASH_SERVICE_NAME, SystemdManager

log = logging.getLogger(__name__)

# --- Adapter names (keys of the adapter registry) ---
KVANTUM = "kvantum"
WIDGET_STYLE = "widget_style"
GTK = "gtk"
FLATPAK_ICONS = "flatpak_icons"
KONSOLE = "konsole"
ICONS = "icons"
COLOR_SCHEME = "color_scheme"
PLASMA_STYLE = "plasma_style"
DECORATION = "decoration"
CURSOR = "cursor"
SPLASH = "splash"
LOGIN_THEME = "login_theme"
BROWSER = "browser"
SCRIPT = "script"
REFRESH = "refresh"

SDDM_CONF = "/etc/sddm.conf.d/kde_settings.conf"
SCRIPT_TIMEOUT = 300.0
KVANTUM_CONFIG = pathlib.Path.home() / ".config" / "Kvantum" / "kvantum.kvconfig"
GTK_CONFIG_DIR = pathlib.Path.home() / ".config"
XSETTINGSD_CONF = pathlib.Path.home() / ".config" / "xsettingsd" / "xsettingsd.conf"


def kvantum_style_for(mode: Mode) -> str:
    return "kvantum-dark" if mode is Mode.DARK else "kvantum"


class SubsystemAdapter:
    """Defines the interface every subsystem adapter implements."""

    name = "subsystem"

    def apply(self, value: str) -> None:
        raise NotImplementedError

    def _run(self, cmd: list[str], timeout: Optional[float] = None) -> str:
        """Runs a command, converting any failure into AdapterError."""
        try:
            code, stdout, stderr = helpers.run_command(cmd, capture=True, timeout=timeout)
        except (FileNotFoundError, NightSyncError) as e:
            raise AdapterError(self.name, str(e)) from e
        if code != 0:
            raise AdapterError(
                self.name, f"'{cmd[0]}' exited with code {code}: {stderr or 'no output'}"
            )
        return stdout

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class CommandAdapter(SubsystemAdapter):
    """Runs `<argv...> <value>` (the plasma-apply-* family)."""

    def __init__(self, name: str, argv: Sequence[str]):
        self.name = name
        self.argv = list(argv)

    def apply(self, value: str) -> None:
        log.info(f"Applying {self.name}: {value}")
        self._run([*self.argv, value])


class PlasmaConfigAdapter(SubsystemAdapter):
    """Adapters that write Plasma config keys share a PlasmaHandler."""

    def __init__(self, plasma: PlasmaHandler):
        self.plasma = plasma

    def _write(self, file: str, groups: Sequence[str], key: str, value: str, sudo: bool = False) -> None:
        try:
            self.plasma.write_config(file, groups, key, value, sudo=sudo)
        except DesktopError as e:
            raise AdapterError(self.name, str(e)) from e


class KvantumAdapter(PlasmaConfigAdapter):
    name = KVANTUM

    def __init__(self, plasma: PlasmaHandler, config_file: pathlib.Path = KVANTUM_CONFIG):
        super().__init__(plasma)
        self.config_file = config_file

    def apply(self, value: str) -> None:
        log.info(f"Setting Kvantum theme to: {value}")
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AdapterError(self.name, f"Cannot create {self.config_file.parent}: {e}") from e
        self._write(str(self.config_file), ["General"], "theme", value)


class WidgetStyleAdapter(PlasmaConfigAdapter):
    """Sets the Qt widget style (also used for the per-mode application style)."""

    name = WIDGET_STYLE

    def apply(self, value: str) -> None:
        log.info(f"Setting widget style to: {value}")
        self._write(KDEGLOBALS, [KDE_GROUP], "widgetStyle", value)


class GtkThemeAdapter(SubsystemAdapter):
    name = GTK

    def __init__(
        self,
        config_dir: pathlib.Path = GTK_CONFIG_DIR,
        xsettingsd_conf: pathlib.Path = XSETTINGSD_CONF,
    ):
        self.config_dir = config_dir
        self.xsettingsd_conf = xsettingsd_conf

    def _write_settings_ini(self, path: pathlib.Path, theme: str) -> None:
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str
        try:
            if path.exists():
                parser.read(path, encoding="utf-8")
            if not parser.has_section("Settings"):
                parser.add_section("Settings")
            parser.set("Settings", "gtk-theme-name", theme)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                parser.write(f, space_around_delimiters=False)
        except (configparser.Error, OSError) as e:
            raise AdapterError(self.name, f"Failed to update {path}: {e}") from e

    def apply(self, value: str) -> None:
        log.info(f"Setting GTK theme to: {value}")
        for version in ("gtk-3.0", "gtk-4.0"):
            self._write_settings_ini(self.config_dir / version / "settings.ini", value)

        if helpers.command_exists("gsettings"):
            try:
                self._run(["gsettings", "set", "org.gnome.desktop.interface", "gtk-theme", value])
            except AdapterError as e:
                log.debug(f"gsettings gtk-theme not updated: {e}")

        # X11 fallback
        if self.xsettingsd_conf.is_file():
            try:
                content = self.xsettingsd_conf.read_text(encoding="utf-8")
                content = re.sub(
                    r'^Net/ThemeName ".*"$',
                    lambda _: f'Net/ThemeName "{value}"',
                    content,
                    flags=re.MULTILINE,
                )
                self.xsettingsd_conf.write_text(content, encoding="utf-8")
                helpers.run_command(["pkill", "-HUP", "xsettingsd"])
            except (OSError, FileNotFoundError, NightSyncError) as e:
                log.debug(f"xsettingsd not updated: {e}")

        set_flatpak_env(self, "GTK_THEME", value)


class FlatpakIconsAdapter(PlasmaConfigAdapter):
    """Exports the icon theme to Flatpak apps; empty means the current one."""

    name = FLATPAK_ICONS

    def apply(self, value: str) -> None:
        value = value or self.plasma.get_icon_theme()
        if not value:
            return
        set_flatpak_env(self, "GTK_ICON_THEME", value)


def set_flatpak_env(adapter: SubsystemAdapter, variable: str, value: str) -> None:
    if not helpers.command_exists("flatpak"):
        return
    log.debug(f"Setting Flatpak override {variable}={value}")
    adapter._run(["flatpak", "override", "--user", f"--env={variable}={value}"])


class KonsoleProfileAdapter(PlasmaConfigAdapter):
    name = KONSOLE

    def apply(self, value: str) -> None:
        log.info(f"Setting Konsole profile to: {value}")
        # New windows need the file name, running sessions the bare profile name.
        self._write("konsolerc", ["Desktop Entry"], "DefaultProfile", f"{value}.profile")

        qdbus = find_qdbus()
        if qdbus is None:
            return
        for instance in self._list(qdbus):
            if not re.search(r"org\.kde\.(konsole|yakuake)", instance):
                continue
            for obj in self._list(qdbus, instance):
                if obj.startswith("/Sessions/"):
                    self._call(qdbus, instance, obj, "org.kde.konsole.Session.setProfile", value)
                elif obj.startswith("/Windows/"):
                    self._call(qdbus, instance, obj, "org.kde.konsole.Window.setDefaultProfile", value)

    def _list(self, qdbus: str, *args: str) -> list[str]:
        try:
            code, stdout, _ = helpers.run_command([qdbus, *args], timeout=BUS_CALL_TIMEOUT)
        except (FileNotFoundError, NightSyncError) as e:
            log.debug(f"{qdbus} {' '.join(args)} failed: {e}")
            return []
        return [line.strip() for line in stdout.splitlines() if line.strip()] if code == 0 else []

    def _call(self, qdbus: str, instance: str, obj: str, method: str, value: str) -> None:
        try:
            helpers.run_command([qdbus, instance, obj, method, value], timeout=BUS_CALL_TIMEOUT)
        except (FileNotFoundError, NightSyncError) as e:
            log.debug(f"Live Konsole update failed for {instance}{obj}: {e}")


class IconThemeAdapter(SubsystemAdapter):
    """Switches icons through Plasma's changeicons helper."""

    name = ICONS

    def __init__(self, changer: str):
        self.changer = changer

    def apply(self, value: str) -> None:
        if not self.changer:
            raise AdapterError(self.name, "no icon changer helper configured")
        log.info(f"Setting icon theme to: {value}")
        self._run([self.changer, value])


class SplashAdapter(PlasmaConfigAdapter):
    name = SPLASH

    def __init__(
        self,
        plasma: PlasmaHandler,
        systemd: SystemdManager,
        sleep: Callable[[float], None] = time.sleep,
        propagate_delay: float = DELAY_LAF_PROPAGATE,
    ):
        super().__init__(plasma)
        self.systemd = systemd
        self._sleep = sleep
        self.propagate_delay = propagate_delay

    def apply(self, value: str) -> None:
        # LookAndFeel rewrites ksplashrc; let it finish first.
        self._sleep(self.propagate_delay)
        try:
            if value == SPLASH_DISABLED:
                log.info("Disabling splash screen")
                # Engine must be 'none' too, or KSplashQML still shows one.
                self._write("ksplashrc", ["KSplash"], "Engine", "none")
                self._write("ksplashrc", ["KSplash"], "Theme", SPLASH_DISABLED)
                self.systemd.mask_unit(KSPLASH_SERVICE_NAME)
            else:
                log.info(f"Setting splash screen to: {value}")
                self._write("ksplashrc", ["KSplash"], "Theme", value)
                self._write("ksplashrc", ["KSplash"], "Engine", "KSplashQML")
                self.systemd.unmask_unit(KSPLASH_SERVICE_NAME)
        except SystemdError as e:
            raise AdapterError(self.name, str(e)) from e


class LoginThemeAdapter(PlasmaConfigAdapter):
    """Sets the SDDM theme through the sudo-whitelisted helper."""

    name = LOGIN_THEME

    def __init__(
        self,
        plasma: PlasmaHandler,
        helper_dir: pathlib.Path = HELPER_DIR,
        sleep: Callable[[float], None] = time.sleep,
        propagate_delay: float = DELAY_LAF_PROPAGATE,
    ):
        super().__init__(plasma)
        self.helper = helper_dir / "set-sddm-theme"
        self._sleep = sleep
        self.propagate_delay = propagate_delay

    def apply(self, value: str) -> None:
        self._sleep(self.propagate_delay)
        log.info(f"Setting login screen theme to: {value}")
        if os.access(self.helper, os.X_OK):
            self._run(["sudo", "-n", str(self.helper), value], timeout=SUDO_TIMEOUT)
        else:
            self._write(SDDM_CONF, ["Theme"], "Current", value, sudo=True)


class BrowserColorSchemeAdapter(PlasmaConfigAdapter):
    """Tells browsers and GTK apps about the mode. Value is 'light' or 'dark'."""

    name = BROWSER

    def apply(self, value: str) -> None:
        mode = Mode.parse(value)
        color_scheme = "prefer-dark" if mode is Mode.DARK else "prefer-light"
        portal_value = 1 if mode is Mode.DARK else 0

        # Browsers poll this
        if helpers.command_exists("gsettings"):
            try:
                self._run(["gsettings", "set", "org.gnome.desktop.interface", "color-scheme", color_scheme])
            except AdapterError as e:
                log.debug(f"gsettings color-scheme not updated: {e}")

        # Portal signal for instant notification
        try:
            self.plasma.send_signal(
                "/org/freedesktop/portal/desktop",
                "org.freedesktop.portal.Settings.SettingChanged",
                "string:org.freedesktop.appearance",
                "string:color-scheme",
                f"variant:uint32:{portal_value}",
            )
        except DesktopError as e:
            raise AdapterError(self.name, str(e)) from e


class CustomScriptAdapter(SubsystemAdapter):
    name = SCRIPT

    def __init__(self, timeout: float = SCRIPT_TIMEOUT):
        self.timeout = timeout

    def apply(self, value: str) -> None:
        path = pathlib.Path(value).expanduser()
        if not (path.is_file() and os.access(path, os.X_OK)):
            raise AdapterError(self.name, f"script not executable: {path}")
        log.info(f"Running script: {path}")
        try:
            code, stdout, stderr = helpers.run_command([str(path)], timeout=self.timeout)
        except (FileNotFoundError, NightSyncError) as e:
            raise AdapterError(self.name, str(e)) from e
        for line in (stdout + "\n" + stderr).splitlines():
            if line.strip():
                log.info(f"[{path.name}] {line}")
        if code != 0:
            raise AdapterError(self.name, f"script failed with exit code {code}: {path}")
        log.info(f"Script completed successfully: {path}")


class ForceRefreshAdapter(PlasmaConfigAdapter):
    name = REFRESH

    def apply(self, value: str = "") -> None:
        try:
            self.plasma.force_refresh()
        except DesktopError as e:
            raise AdapterError(self.name, str(e)) from e


def build_default_adapters(
    plasma: PlasmaHandler,
    systemd: SystemdManager,
    icon_changer: str,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, SubsystemAdapter]:
    """The real adapters, keyed by adapter name."""
    adapters: list[SubsystemAdapter] = [
        KvantumAdapter(plasma),
        WidgetStyleAdapter(plasma),
        GtkThemeAdapter(),
        FlatpakIconsAdapter(plasma),
        KonsoleProfileAdapter(plasma),
        IconThemeAdapter(icon_changer),
        CommandAdapter(COLOR_SCHEME, ["plasma-apply-colorscheme"]),
        CommandAdapter(PLASMA_STYLE, ["plasma-apply-desktoptheme"]),
        CommandAdapter(DECORATION, ["/usr/lib/kwin-applywindowdecoration"]),
        CommandAdapter(CURSOR, ["plasma-apply-cursortheme"]),
        SplashAdapter(plasma, systemd, sleep=sleep),
        LoginThemeAdapter(plasma, sleep=sleep),
        BrowserColorSchemeAdapter(plasma),
        CustomScriptAdapter(),
        ForceRefreshAdapter(plasma),
    ]
    return {adapter.name: adapter for adapter in adapters}

# nightsync_core/config.py
"""
Configuration management for nightsync.

This module handles loading and validating the flat `KEY=value` record
(`nightsync.conf`) written by the configuration wizard, and turns it into
an immutable, typed `SyncConfig` view. The daemon never writes this file.
"""

import configparser
import dataclasses
import logging
import os
import pathlib
from types import MappingProxyType
from typing import Mapping, Optional

from .exceptions import ConfigError
from .modes import Mode, Subsystem

log = logging.getLogger(__name__)

# --- Constants ---
APP_NAME = "nightsync"
CONFIG_DIR = pathlib.Path.home() / ".config"
CONFIG_FILE = CONFIG_DIR / f"{APP_NAME}.conf"
STATE_DIR = pathlib.Path(
    os.environ.get("XDG_STATE_HOME") or pathlib.Path.home() / ".local" / "state"
)
LOG_FILE = STATE_DIR / f"{APP_NAME}.log"
DEFAULT_WALLPAPER_BASE = pathlib.Path.home() / ".local" / "share" / "wallpapers"
HELPER_DIR = pathlib.Path("/usr/local/lib") / APP_NAME

# Delays (seconds) for Plasma to finish writing its own configs after a
# LookAndFeel apply, before we read or overwrite related keys.
DELAY_LAF_SETTLE = 0.5
DELAY_LAF_PROPAGATE = 1.0

DEBOUNCE_SECONDS = 3.0
RESUBSCRIBE_DELAY = 1.0

NIGHTTIME_READY_ATTEMPTS = 20
NIGHTTIME_READY_INTERVAL = 0.25
GEOCLUE_READY_ATTEMPTS = 60
GEOCLUE_READY_INTERVAL = 1.0
GEOCLUE_SETTLE_DELAY = 5.0
SCHEDULE_READY_ATTEMPTS = 30
SCHEDULE_READY_INTERVAL = 1.0

SUDO_TIMEOUT = 10.0
BUS_CALL_TIMEOUT = 5.0

# Tools the watcher cannot run without; per-subsystem tools are optional.
WATCHER_DEPENDENCIES = [
    "kreadconfig6",
    "kwriteconfig6",
    "plasma-apply-lookandfeel",
    "dbus-monitor",
    "dbus-send",
    "busctl",
    "systemctl",
]

_SECTION = APP_NAME

# Keys every schema-1 record must carry. Extra keys are tolerated.
EXPECTED_CONFIG_KEYS: tuple[str, ...] = (
    "LAF_LIGHT", "LAF_DARK",
    "KVANTUM_LIGHT", "KVANTUM_DARK",
    "ICON_LIGHT", "ICON_DARK",
    "PLASMA_CHANGEICONS",
    "GTK_LIGHT", "GTK_DARK",
    "COLOR_LIGHT", "COLOR_DARK",
    "STYLE_LIGHT", "STYLE_DARK",
    "DECORATION_LIGHT", "DECORATION_DARK",
    "CURSOR_LIGHT", "CURSOR_DARK",
    "KONSOLE_LIGHT", "KONSOLE_DARK",
    "SPLASH_LIGHT", "SPLASH_DARK",
    "SDDM_LIGHT", "SDDM_DARK",
    "APPSTYLE_LIGHT", "APPSTYLE_DARK",
    "WALLPAPER", "WP_SOURCE_LIGHT", "WP_SOURCE_DARK",
    "SCRIPT_LIGHT", "SCRIPT_DARK",
    "CUSTOM_THEME_LIGHT", "CUSTOM_THEME_DARK",
    "BASE_THEME_LIGHT", "BASE_THEME_DARK",
    "THEME_INSTALL_GLOBAL", "WALLPAPER_BASE",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """One loaded, validated configuration record. Immutable per apply cycle."""

    look_and_feel: Mapping[Mode, str]
    settings: Mapping[tuple[Subsystem, Mode], str]
    icon_changer: str = ""
    wallpaper_enabled: bool = False
    wallpaper_base: pathlib.Path = DEFAULT_WALLPAPER_BASE
    extras: Mapping[str, str] = dataclasses.field(default_factory=dict)

    def setting(self, subsystem: Subsystem, mode: Mode) -> str:
        """Configured value, or '' when the subsystem is left unmanaged."""
        return self.settings.get((subsystem, mode), "")

    def laf_for(self, mode: Mode) -> str:
        return self.look_and_feel.get(mode, "")

    def mode_for_laf(self, laf: Optional[str]) -> Optional[Mode]:
        """Maps a theme package id to Light/Dark; None when it matches neither."""
        if not laf:
            return None
        for mode in (Mode.LIGHT, Mode.DARK):
            if laf == self.look_and_feel.get(mode):
                return mode
        return None

    def is_bundled(self, mode: Mode) -> bool:
        return bool(self.setting(Subsystem.CUSTOM_THEME, mode))

    def with_look_and_feels(self, light: str, dark: str) -> "SyncConfig":
        """Copy with the desktop's current light/dark package ids (empty keeps ours)."""
        lafs = {
            Mode.LIGHT: light or self.laf_for(Mode.LIGHT),
            Mode.DARK: dark or self.laf_for(Mode.DARK),
        }
        if lafs == dict(self.look_and_feel):
            return self
        return dataclasses.replace(self, look_and_feel=MappingProxyType(lafs))


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


class ConfigStore:
    """Handles reading and validating nightsync.conf."""

    def __init__(self, config_file: pathlib.Path = CONFIG_FILE):
        self.config_file = pathlib.Path(config_file)

    def _load_record(self) -> dict[str, str]:
        if not self.config_file.is_file():
            raise ConfigError(
                f"No config found at {self.config_file}. Run configure first."
            )
        try:
            text = self.config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Could not read config file {self.config_file}: {e}") from e

        # The record is flat shell-style KEY=value; give configparser a section.
        parser = configparser.ConfigParser(
            interpolation=None, delimiters=("=",), strict=False
        )
        parser.optionxform = str  # keys are case-sensitive
        try:
            parser.read_string(f"[{_SECTION}]\n{text}", source=str(self.config_file))
        except configparser.Error as e:
            raise ConfigError(f"Could not parse config file {self.config_file}: {e}") from e
        return {key: _strip_quotes(value) for key, value in parser.items(_SECTION)}

    def missing_keys(self, record: Mapping[str, str]) -> list[str]:
        return [key for key in EXPECTED_CONFIG_KEYS if key not in record]

    def is_valid(self) -> bool:
        """Non-raising check used by status reporting."""
        try:
            self.load()
        except ConfigError:
            return False
        return True

    def load(self) -> SyncConfig:
        """
        Loads and validates the configuration record.

        Raises:
            ConfigError: If the file is absent, unreadable, or lacks any
                         required key (needs reconfiguration).
        """
        record = self._load_record()
        missing = self.missing_keys(record)
        if missing:
            raise ConfigError(
                "Your configuration is outdated or incompatible "
                f"(missing: {', '.join(missing)}). Please run configure again."
            )

        settings: dict[tuple[Subsystem, Mode], str] = {}
        for subsystem in Subsystem:
            for mode in (Mode.LIGHT, Mode.DARK):
                value = record.get(subsystem.key(mode), "")
                if value:
                    settings[(subsystem, mode)] = value

        extras = {k: v for k, v in record.items() if k not in EXPECTED_CONFIG_KEYS}
        if extras:
            log.debug(f"Ignoring unknown config keys: {', '.join(sorted(extras))}")

        wallpaper_base = record.get("WALLPAPER_BASE", "")
        config = SyncConfig(
            look_and_feel=MappingProxyType(
                {Mode.LIGHT: record["LAF_LIGHT"], Mode.DARK: record["LAF_DARK"]}
            ),
            settings=MappingProxyType(settings),
            icon_changer=record.get("PLASMA_CHANGEICONS", ""),
            wallpaper_enabled=record.get("WALLPAPER", "").lower() in _TRUE_VALUES,
            wallpaper_base=(
                pathlib.Path(wallpaper_base).expanduser()
                if wallpaper_base
                else DEFAULT_WALLPAPER_BASE
            ),
            extras=MappingProxyType(extras),
        )
        log.debug(f"Loaded configuration from {self.config_file}")
        return config

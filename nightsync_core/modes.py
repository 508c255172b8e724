# nightsync_core/modes.py
"""
Mode and subsystem identifiers.

`Mode` is the single source for every spelling of light/dark/auto: the
lowercase value is what goes into the mode marker and the CLI, `label` is
for humans, and `config_suffix` is what the configuration record uses.
"""

from enum import Enum
from typing import Optional

from .exceptions import ValidationError


class Mode(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    AUTO = "auto"

    @classmethod
    def parse(cls, value: str) -> "Mode":
        """Parses any case variant ('dark', 'DARK', 'Dark')."""
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValidationError(f"Invalid mode '{value}'. Use light, dark or auto.")

    @property
    def is_concrete(self) -> bool:
        return self is not Mode.AUTO

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def config_suffix(self) -> str:
        return self.value.upper()

    def __str__(self) -> str:
        return self.value


def mode_from_daylight(is_daylight: bool) -> Mode:
    return Mode.LIGHT if is_daylight else Mode.DARK


class Subsystem(Enum):
    """Per-mode settings in the configuration record, by key prefix."""

    KVANTUM = "KVANTUM"
    ICON = "ICON"
    GTK = "GTK"
    COLOR = "COLOR"
    STYLE = "STYLE"
    DECORATION = "DECORATION"
    CURSOR = "CURSOR"
    KONSOLE = "KONSOLE"
    SPLASH = "SPLASH"
    SDDM = "SDDM"
    APPSTYLE = "APPSTYLE"
    SCRIPT = "SCRIPT"
    CUSTOM_THEME = "CUSTOM_THEME"
    BASE_THEME = "BASE_THEME"
    WP_SOURCE = "WP_SOURCE"

    def key(self, mode: Mode) -> str:
        if not mode.is_concrete:
            raise ValidationError(f"No {self.value} setting exists for auto mode.")
        return f"{self.value}_{mode.config_suffix}"


# Folded into a prebuilt theme package when the mode is bundled. Listed in
# apply order: icons before anything that repaints with them.
BUNDLEABLE_SUBSYSTEMS = (
    Subsystem.ICON,
    Subsystem.COLOR,
    Subsystem.STYLE,
    Subsystem.DECORATION,
    Subsystem.CURSOR,
    Subsystem.SPLASH,
    Subsystem.APPSTYLE,
)

SPLASH_DISABLED = "None"


def parse_mode_or_none(value: Optional[str]) -> Optional[Mode]:
    if not value:
        return None
    try:
        return Mode.parse(value)
    except ValidationError:
        return None

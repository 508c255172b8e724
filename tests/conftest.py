"""Shared fakes and fixtures. Nothing here touches a real desktop."""

import pathlib

import pytest

from nightsync_core import adapters as ad
from nightsync_core.applier import ThemeApplier
from nightsync_core.config import EXPECTED_CONFIG_KEYS, ConfigStore
from nightsync_core.exceptions import AdapterError, DesktopError, ScheduleError
from nightsync_core.schedule import ScheduleWindow, Subscription
from nightsync_core.state import ApplyStamp, ModeMarker
from nightsync_core.wallpaper import Surface

LIGHT_LAF = "org.kde.breeze.desktop"
DARK_LAF = "org.kde.breezedark.desktop"


def write_config_file(path: pathlib.Path, **values) -> pathlib.Path:
    """Writes a complete record; keyword arguments override the defaults."""
    record = {key: "" for key in EXPECTED_CONFIG_KEYS}
    record.update(LAF_LIGHT=LIGHT_LAF, LAF_DARK=DARK_LAF, WALLPAPER="false")
    record.update(values)
    lines = ["# nightsync configuration"]
    lines += [f'{key}="{value}"' for key, value in record.items() if value is not None]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class FakePlasma:
    """Stands in for PlasmaHandler; behaves like Plasma for the keys nightsync uses."""

    def __init__(self, laf=LIGHT_LAF, automatic=False, defaults=(LIGHT_LAF, DARK_LAF)):
        self.laf = laf
        self.automatic = automatic
        self.defaults = defaults
        self.icon_theme = "breeze"
        self.configs = {}
        self.calls = []
        self.fail_apply = False

    def get_look_and_feel(self):
        return self.laf

    def get_default_look_and_feels(self):
        return self.defaults

    def is_automatic_mode(self):
        return self.automatic

    def set_automatic_mode(self, enabled):
        self.calls.append(("set_automatic_mode", enabled))
        self.automatic = enabled

    def apply_look_and_feel(self, laf):
        self.calls.append(("apply_look_and_feel", laf))
        if self.fail_apply:
            raise DesktopError(f"Failed to apply LookAndFeel '{laf}'")
        self.laf = laf
        # plasma-apply-lookandfeel clears the automatic flag
        self.automatic = False

    def get_icon_theme(self):
        return self.icon_theme

    def read_config(self, file, groups, key, default=""):
        return self.configs.get((file, tuple(groups), key), default)

    def write_config(self, file, groups, key, value, sudo=False):
        self.calls.append(("write_config", file, key, value))
        self.configs[(file, tuple(groups), key)] = value

    def send_signal(self, path, member, *args):
        self.calls.append(("send_signal", member) + args)

    def force_refresh(self):
        self.calls.append(("force_refresh",))

    def show_osd(self, icon, text):
        self.calls.append(("show_osd", icon, text))

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


class RecordingAdapter(ad.SubsystemAdapter):
    def __init__(self, name, log, fail=False):
        self.name = name
        self.log = log
        self.fail = fail

    def apply(self, value):
        self.log.append((self.name, value))
        if self.fail:
            raise AdapterError(self.name, "simulated failure")


class AdapterLog(list):
    def names(self):
        return [name for name, _ in self]

    def values_for(self, name):
        return [value for n, value in self if n == name]


ALL_ADAPTER_NAMES = (
    ad.KVANTUM, ad.WIDGET_STYLE, ad.GTK, ad.FLATPAK_ICONS, ad.KONSOLE, ad.ICONS,
    ad.COLOR_SCHEME, ad.PLASMA_STYLE, ad.DECORATION, ad.CURSOR, ad.SPLASH,
    ad.LOGIN_THEME, ad.BROWSER, ad.SCRIPT, ad.REFRESH,
)


class FakeWallpapers:
    def __init__(self):
        self.managed = {surface: True for surface in Surface}
        self.applied = []
        self.checked = []

    def is_managed(self, surface, pack_dir):
        self.checked.append((surface, pack_dir))
        return self.managed[surface]

    def apply(self, surface, mode, pack_dir):
        self.applied.append((surface, mode, pack_dir))
        return True


class FakeNightTime:
    """Stands in for NightTimeClient."""

    def __init__(self, windows=(), available=True, location=True):
        self.windows = tuple(windows)
        self.available = available
        self.location = location
        self.subscribed = 0
        self.unsubscribed = []

    def is_available(self):
        return self.available

    def is_location_available(self):
        return self.location

    def subscribe(self):
        if not self.available:
            raise ScheduleError("NightTime Subscribe failed: no response")
        self.subscribed += 1
        return Subscription(cookie=self.subscribed, windows=self.windows)

    def unsubscribe(self, cookie):
        self.unsubscribed.append(cookie)


def window(morning_end, evening_end):
    """A cycle where only the two boundaries the resolver reads matter."""
    return ScheduleWindow(
        solar_noon=(morning_end + evening_end) // 2,
        morning_start=morning_end - 1000,
        morning_end=morning_end,
        evening_start=evening_end - 1000,
        evening_end=evening_end,
    )


@pytest.fixture
def config_file(tmp_path):
    return write_config_file(tmp_path / "nightsync.conf")


@pytest.fixture
def store(config_file):
    return ConfigStore(config_file)


@pytest.fixture
def marker(tmp_path):
    return ModeMarker(tmp_path / "nightsync-runtime")


@pytest.fixture
def stamp(tmp_path):
    return ApplyStamp(tmp_path / "nightsync-last-apply")


@pytest.fixture
def adapter_log():
    return AdapterLog()


@pytest.fixture
def recording_adapters(adapter_log):
    return {name: RecordingAdapter(name, adapter_log) for name in ALL_ADAPTER_NAMES}


@pytest.fixture
def wallpapers():
    return FakeWallpapers()


@pytest.fixture
def make_applier(store, recording_adapters, wallpapers, marker):
    def _make(config_store=None):
        return ThemeApplier(
            store=config_store or store,
            adapters=recording_adapters,
            wallpapers=wallpapers,
            marker=marker,
            sleep=lambda seconds: None,
        )

    return _make

"""Tests for ThemeApplier step order, bundling, idempotence and isolation."""

import pytest

from conftest import RecordingAdapter, write_config_file
from nightsync_core import adapters as ad
from nightsync_core.config import ConfigStore
from nightsync_core.exceptions import ConfigError, ValidationError
from nightsync_core.modes import Mode
from nightsync_core.wallpaper import Surface

FULL = dict(
    KVANTUM_DARK="KvArcDark",
    GTK_DARK="Breeze-Dark",
    KONSOLE_DARK="Dark",
    ICON_DARK="Papirus-Dark",
    PLASMA_CHANGEICONS="/usr/lib/plasma-changeicons",
    COLOR_DARK="BreezeDark",
    STYLE_DARK="breeze-dark",
    DECORATION_DARK="Breeze",
    CURSOR_DARK="Bibata-Modern-Ice",
    SPLASH_DARK="None",
    SDDM_DARK="breeze-dark",
    APPSTYLE_DARK="Fusion",
    SCRIPT_DARK="/home/user/dark.sh",
    WALLPAPER="true",
)


@pytest.fixture
def full_store(tmp_path):
    return ConfigStore(write_config_file(tmp_path / "full.conf", **FULL))


class TestStepOrder:
    def test_full_dark_apply_order(self, make_applier, full_store, adapter_log, wallpapers, marker):
        applier = make_applier(full_store)

        result = applier.apply(Mode.DARK)

        assert adapter_log == [
            (ad.KVANTUM, "KvArcDark"),
            (ad.WIDGET_STYLE, "kvantum-dark"),
            (ad.GTK, "Breeze-Dark"),
            (ad.FLATPAK_ICONS, "Papirus-Dark"),
            (ad.KONSOLE, "Dark"),
            (ad.ICONS, "Papirus-Dark"),
            (ad.COLOR_SCHEME, "BreezeDark"),
            (ad.PLASMA_STYLE, "breeze-dark"),
            (ad.DECORATION, "Breeze"),
            (ad.CURSOR, "Bibata-Modern-Ice"),
            (ad.SPLASH, "None"),
            (ad.LOGIN_THEME, "breeze-dark"),
            (ad.BROWSER, "dark"),
            (ad.SCRIPT, "/home/user/dark.sh"),
            (ad.REFRESH, ""),
        ]
        assert [surface for surface, _, _ in wallpapers.applied] == list(Surface)
        assert result.ok
        assert marker.read() is Mode.DARK
        assert applier.applied_mode is Mode.DARK

    def test_app_style_applies_without_kvantum(self, tmp_path, make_applier, adapter_log):
        store = ConfigStore(write_config_file(tmp_path / "c.conf", APPSTYLE_LIGHT="Fusion"))

        make_applier(store).apply(Mode.LIGHT)

        assert adapter_log.values_for(ad.WIDGET_STYLE) == ["Fusion"]

    def test_unconfigured_subsystems_are_left_alone(self, make_applier, adapter_log):
        make_applier().apply(Mode.LIGHT)

        assert adapter_log.names() == [ad.BROWSER, ad.REFRESH]

    def test_icons_need_a_changer(self, tmp_path, make_applier, adapter_log):
        store = ConfigStore(write_config_file(tmp_path / "c.conf", ICON_LIGHT="Papirus"))

        result = make_applier(store).apply(Mode.LIGHT)

        assert ad.ICONS not in adapter_log.names()
        assert ad.ICONS in result.skipped

    def test_auto_is_not_an_apply_target(self, make_applier):
        with pytest.raises(ValidationError):
            make_applier().apply(Mode.AUTO)


class TestBundling:
    def test_bundled_mode_skips_bundleable_subsystems(self, tmp_path, make_applier, adapter_log):
        values = dict(FULL, CUSTOM_THEME_DARK="org.kde.custom.dark", SPLASH_DARK="Breeze")
        store = ConfigStore(write_config_file(tmp_path / "c.conf", **values))

        make_applier(store).apply(Mode.DARK)

        names = adapter_log.names()
        for skipped in (ad.ICONS, ad.COLOR_SCHEME, ad.PLASMA_STYLE, ad.DECORATION, ad.CURSOR, ad.SPLASH):
            assert skipped not in names
        assert adapter_log.values_for(ad.WIDGET_STYLE) == ["kvantum-dark"]
        assert ad.KONSOLE in names
        assert ad.LOGIN_THEME in names

    def test_bundled_mode_without_kvantum_leaves_widget_style_alone(self, tmp_path, make_applier, adapter_log):
        values = dict(FULL, CUSTOM_THEME_DARK="org.kde.custom.dark", SPLASH_DARK="Breeze", KVANTUM_DARK="")
        store = ConfigStore(write_config_file(tmp_path / "c.conf", **values))

        result = make_applier(store).apply(Mode.DARK)

        assert ad.WIDGET_STYLE not in adapter_log.names()
        assert not set(result.succeeded) & {ad.ICONS, ad.COLOR_SCHEME, ad.PLASMA_STYLE, ad.DECORATION, ad.CURSOR, ad.SPLASH}

    def test_bundled_mode_still_keeps_splash_disabled(self, tmp_path, make_applier, adapter_log):
        values = dict(FULL, CUSTOM_THEME_DARK="org.kde.custom.dark")
        store = ConfigStore(write_config_file(tmp_path / "c.conf", **values))

        make_applier(store).apply(Mode.DARK)

        assert adapter_log.values_for(ad.SPLASH) == ["None"]

    def test_other_mode_bundle_does_not_matter(self, tmp_path, make_applier, adapter_log):
        values = dict(FULL, CUSTOM_THEME_LIGHT="org.kde.custom.light")
        store = ConfigStore(write_config_file(tmp_path / "c.conf", **values))

        make_applier(store).apply(Mode.DARK)

        assert ad.ICONS in adapter_log.names()


class TestIdempotence:
    def test_second_apply_only_reasserts_unconditional_steps(self, make_applier, full_store, adapter_log, wallpapers):
        applier = make_applier(full_store)
        applier.apply(Mode.DARK)
        first = len(adapter_log)
        first_wallpapers = len(wallpapers.applied)

        result = applier.apply(Mode.DARK)

        assert result.repeat is True
        assert adapter_log.names()[first:] == [
            ad.KVANTUM, ad.WIDGET_STYLE, ad.GTK, ad.FLATPAK_ICONS, ad.KONSOLE, ad.LOGIN_THEME,
        ]
        assert len(wallpapers.applied) == first_wallpapers

    def test_force_runs_everything_again(self, make_applier, full_store, adapter_log):
        applier = make_applier(full_store)
        applier.apply(Mode.DARK)
        first = len(adapter_log)

        applier.apply(Mode.DARK, force=True)

        assert len(adapter_log) == 2 * first

    def test_switching_mode_is_a_full_apply(self, make_applier, full_store, adapter_log):
        applier = make_applier(full_store)
        applier.apply(Mode.DARK)

        result = applier.apply(Mode.LIGHT)

        assert result.repeat is False
        assert adapter_log.names()[-2:] == [ad.BROWSER, ad.REFRESH]


class TestInitialAndWallpapers:
    def test_initial_apply_skips_browser_broadcast(self, make_applier, full_store, adapter_log):
        make_applier(full_store).apply(Mode.DARK, initial=True)

        assert ad.BROWSER not in adapter_log.names()
        assert ad.REFRESH in adapter_log.names()

    def test_user_owned_surface_is_not_written(self, make_applier, full_store, wallpapers):
        wallpapers.managed[Surface.DESKTOP] = False

        result = make_applier(full_store).apply(Mode.DARK)

        assert Surface.DESKTOP not in [surface for surface, _, _ in wallpapers.applied]
        assert "wallpaper:desktop" in result.skipped
        assert "wallpaper:lockscreen" in result.succeeded

    def test_wallpapers_need_opt_in(self, make_applier, wallpapers):
        make_applier().apply(Mode.DARK)

        assert wallpapers.applied == []

    def test_pack_dir_follows_wallpaper_base(self, tmp_path, make_applier, wallpapers):
        store = ConfigStore(write_config_file(tmp_path / "c.conf", WALLPAPER="true", WALLPAPER_BASE="/usr/share/wallpapers"))

        make_applier(store).apply(Mode.LIGHT)

        assert str(wallpapers.applied[0][2]) == "/usr/share/wallpapers/nightsync"
        assert {str(pack) for _, pack in wallpapers.checked} == {"/usr/share/wallpapers/nightsync"}


class TestFailureIsolation:
    def test_failing_adapter_does_not_stop_later_steps(self, make_applier, full_store, recording_adapters, adapter_log):
        recording_adapters[ad.GTK] = RecordingAdapter(ad.GTK, adapter_log, fail=True)
        recording_adapters[ad.REFRESH] = RecordingAdapter(ad.REFRESH, adapter_log, fail=True)

        result = make_applier(full_store).apply(Mode.DARK)

        assert result.failed == [ad.GTK, ad.REFRESH]
        assert ad.SCRIPT in result.succeeded
        assert not result.ok

    def test_unexpected_exception_is_contained(self, make_applier, full_store, recording_adapters):
        class Exploding(RecordingAdapter):
            def apply(self, value):
                raise RuntimeError("boom")

        recording_adapters[ad.CURSOR] = Exploding(ad.CURSOR, [])

        result = make_applier(full_store).apply(Mode.DARK)

        assert ad.CURSOR in result.failed
        assert ad.REFRESH in result.succeeded

    def test_marker_write_failure_is_not_fatal(self, make_applier, marker, monkeypatch):
        def fail(mode):
            raise OSError("read-only")

        monkeypatch.setattr(marker, "write", fail)

        result = make_applier().apply(Mode.LIGHT)

        assert result.mode is Mode.LIGHT


class TestConfigReload:
    def test_broken_config_keeps_previous(self, make_applier, full_store, adapter_log):
        applier = make_applier(full_store)
        applier.apply(Mode.DARK)
        full_store.config_file.write_text("LAF_LIGHT=x\n")

        applier.apply(Mode.LIGHT)

        assert applier.config.laf_for(Mode.DARK) != ""

    def test_broken_config_without_previous_raises(self, tmp_path, make_applier):
        applier = make_applier(ConfigStore(tmp_path / "absent.conf"))

        with pytest.raises(ConfigError):
            applier.apply(Mode.LIGHT)

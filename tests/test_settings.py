"""Tests for the YAML settings store."""

import pytest
import yaml

from bind9_dash.models import AccessControl, SettingsError, View
from bind9_dash.settings import AccessControlSpec, DashSettings, SettingsStore, ViewSettings


def test_missing_file_yields_defaults(tmp_path):
    settings = SettingsStore(tmp_path / "missing.yaml").load()
    assert settings.zones.auto_reload is True
    assert settings.zones.backup_enabled is True
    assert settings.zones.validate_before_reload is True
    assert settings.zones.auto_generate_ptr is True
    assert settings.views == []


def test_save_and_load(tmp_path):
    store = SettingsStore(tmp_path / "settings.yaml")
    settings = DashSettings()
    settings.zones.auto_reload = False
    settings.views.append(ViewSettings(name="internal", acl=AccessControlSpec(allow=["10.0.0.0/8"]), zones=["a.com"]))
    store.save(settings)

    loaded = store.load()
    assert loaded.zones.auto_reload is False
    assert loaded.find_view("internal").zones == ["a.com"]
    assert loaded.find_view("internal").acl.to_access_control() == AccessControl(allow=["10.0.0.0/8"])
    assert loaded.find_view("guest") is None


def test_acl_entries_are_split(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.safe_dump({"views": [{"name": "guest", "acl": {"allow": "192.168.1.0/24, 192.168.2.0/24", "deny": None}}]}),
        encoding="utf-8",
    )
    view = SettingsStore(path).load().find_view("guest")
    assert view.acl.allow == ["192.168.1.0/24", "192.168.2.0/24"]
    assert view.acl.deny == []


def test_sync_views_keeps_zone_flags(tmp_path):
    store = SettingsStore(tmp_path / "settings.yaml")
    settings = DashSettings()
    settings.zones.auto_generate_ptr = False
    store.save(settings)

    store.sync_views([View(name="internal", acl=AccessControl(allow=["10.0.0.0/8"], deny=["10.0.0.1"]), zones=["a.com"])])
    loaded = store.load()
    assert loaded.zones.auto_generate_ptr is False
    assert loaded.find_view("internal").acl.deny == ["10.0.0.1"]
    assert loaded.find_view("internal").zones == ["a.com"]


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("zones: [unclosed\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        SettingsStore(path).load()


def test_invalid_values_raise(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("zones:\n  auto_reload: maybe\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        SettingsStore(path).load()

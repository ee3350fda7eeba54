"""Shared fixtures: a temporary BIND tree and fake validator/reloader."""

from dataclasses import replace
from pathlib import Path

import pytest

from bind9_dash.config import AppConfig
from bind9_dash.operations import ZoneOperations
from bind9_dash.pipeline import CheckResult
from bind9_dash.settings import SettingsStore

NAMED_CONF = '''// local zones
acl "trusted" {
    10.0.0.0/8;
};

view "internal" {
    match-clients { 10.0.0.0/8; };

    zone "example.com" {
        type master;
        file "zones/db.example.com";
    };
};

view "external" {
    match-clients { any; };
};
'''

ZONE_TEXT = '''$TTL 3600
@       IN      SOA     ns1.example.com. admin.example.com. (
                        2024010101      ; Serial
                        7200            ; Refresh
                        3600            ; Retry
                        1209600         ; Expire
                        3600 )          ; Minimum TTL

@       IN      NS      ns1.example.com.
@       IN      A       192.0.2.1
ns1     IN      A       192.0.2.2
www     300     IN      A       192.0.2.10
mail    IN      MX      10 mx.example.com.
'''


class FakeValidator:
    """Accepts or rejects every candidate and remembers what it saw."""

    def __init__(self, ok=True, output=""):
        self.ok = ok
        self.output = output
        self.seen = []

    def validate(self, path):
        self.seen.append(Path(path).read_text(encoding="utf-8"))
        return CheckResult(ok=self.ok, output=self.output)


class FakeReloader:
    def __init__(self, ok=True, output="reloaded"):
        self.ok = ok
        self.output = output
        self.calls = 0

    def apply(self):
        self.calls += 1
        return CheckResult(ok=self.ok, output=self.output)


@pytest.fixture
def validator():
    return FakeValidator()


@pytest.fixture
def reloader():
    return FakeReloader()


@pytest.fixture
def config(tmp_path):
    bind_dir = tmp_path / "bind"
    zones_dir = bind_dir / "zones"
    zones_dir.mkdir(parents=True)
    return AppConfig(
        named_conf_path=bind_dir / "named.conf.local",
        bind_directory=bind_dir,
        zones_dir=zones_dir,
        slave_zones_dir=zones_dir / "slave",
        settings_path=bind_dir / "bind9-dash.yaml",
        templates_dir=None,
        named_checkconf_bin="named-checkconf",
        named_checkzone_bin="named-checkzone",
        zone_check_strategy="none",
        reload_commands=(("rndc", "reload"),),
        command_timeout=5.0,
        default_zone_ttl=3600,
        protected_zones=frozenset({"."}),
        root_hints_path=None,
        log_level="DEBUG",
    )


@pytest.fixture
def ops(config, validator, reloader):
    (config.zones_dir / "db.example.com").write_text(ZONE_TEXT, encoding="utf-8")
    config.named_conf_path.write_text(NAMED_CONF, encoding="utf-8")
    return ZoneOperations(
        config,
        settings_store=SettingsStore(config.settings_path),
        validator=validator,
        reloader=reloader,
        zone_validator_factory=lambda zone: None,
    )


@pytest.fixture
def make_ops(config, validator, reloader):
    """Build a ZoneOperations over custom document text or config."""

    def factory(text=NAMED_CONF, **overrides):
        cfg = replace(config, **overrides) if overrides else config
        (cfg.zones_dir / "db.example.com").write_text(ZONE_TEXT, encoding="utf-8")
        cfg.named_conf_path.write_text(text, encoding="utf-8")
        return ZoneOperations(
            cfg,
            settings_store=SettingsStore(cfg.settings_path),
            validator=validator,
            reloader=reloader,
            zone_validator_factory=lambda zone: None,
        )

    return factory

"""Tests for the ad blocking response policy zone."""

from datetime import date

import pytest
from pydantic import ValidationError

from bind9_dash import document
from bind9_dash.models import ResourceRecord, ValidationRejectedError
from bind9_dash.operations import ZoneOperations
from bind9_dash.pipeline import DnsPythonZoneValidator
from bind9_dash.rpz import RpzSpec, generate_rpz_zone, parse_blocklist, policy_action
from bind9_dash.settings import SettingsStore
from bind9_dash.zonefile import extract_serial, parse_records

from conftest import NAMED_CONF, ZONE_TEXT, FakeReloader, FakeValidator

HOSTS = '''# Title: example hosts list
127.0.0.1 localhost
0.0.0.0 ads.example.net
0.0.0.0 ads.example.net
0.0.0.0 Tracker.Example.org   # inline comment
0.0.0.0 printer.local
192.168.1.1 router.example.com
'''

ADBLOCK = '''[Adblock Plus 2.0]
! Title: example filter list
||ads.example.net^
|pixel.example.com^
||banner.example.org^$third-party
@@||allowed.example.com^
'''

BIND_LIST = '''zone "ads.example.net" { type master; notify no; file "/etc/bind/null.zone.file"; };
zone "localhost.example" { type master; notify no; file "/etc/bind/null.zone.file"; };
zone "metrics.example.org" { type master; notify no; file "/etc/bind/null.zone.file"; };
'''


def _conf(config):
    return config.named_conf_path.read_text(encoding="utf-8")


def test_parse_hosts_blocklist():
    assert parse_blocklist(HOSTS) == ["ads.example.net", "tracker.example.org"]


def test_parse_adblock_blocklist():
    assert parse_blocklist(ADBLOCK) == ["ads.example.net", "pixel.example.com", "banner.example.org"]


def test_parse_bind_blocklist():
    assert parse_blocklist(BIND_LIST) == ["ads.example.net", "metrics.example.org"]


def test_blocklist_limit():
    text = "0.0.0.0 a.example\n0.0.0.0 b.example\n0.0.0.0 c.example\n"
    assert parse_blocklist(text, limit=2) == ["a.example", "b.example"]


def test_policy_action():
    assert policy_action("0.0.0.0") == ("A", "0.0.0.0")
    assert policy_action("::") == ("AAAA", "::")
    assert policy_action(".") == ("CNAME", ".")
    assert policy_action("NXDOMAIN") == ("CNAME", ".")
    assert policy_action("nodata") == ("CNAME", "*.")
    assert policy_action("Sinkhole.Example.net") == ("CNAME", "sinkhole.example.net.")


def test_spec_splits_domain_strings():
    spec = RpzSpec(custom_domains="ads.example.net, tracker.example.org\nmetrics.example.com")
    assert spec.custom_domains == ["ads.example.net", "tracker.example.org", "metrics.example.com"]
    with pytest.raises(ValidationError):
        RpzSpec(redirect_to="  ")
    with pytest.raises(ValidationError):
        RpzSpec(ttl=-1)


def test_generate_rpz_zone():
    spec = RpzSpec(
        custom_domains=["ads.example.net", "not a domain", "printer.local"],
        wildcard_domains=["*.doubleclick.example"],
        wildcard_enabled=True,
        redirect_to=".",
        blocklists=[HOSTS],
    )
    text = generate_rpz_zone("adblock", spec, today=date(2024, 5, 1))
    assert extract_serial(text) == 2024050101
    records = parse_records(text)
    assert records == [
        ResourceRecord("@", "NS", "localhost."),
        ResourceRecord("ads.example.net", "CNAME", "."),
        ResourceRecord("*.doubleclick.example", "CNAME", "."),
        ResourceRecord("tracker.example.org", "CNAME", "."),
    ]


def test_wildcards_need_enabling():
    spec = RpzSpec(custom_domains=["ads.example.net"], wildcard_domains=["doubleclick.example"])
    names = [record.name for record in parse_records(generate_rpz_zone("adblock", spec))]
    assert names == ["@", "ads.example.net"]


def test_generated_zone_loads_with_dnspython(tmp_path):
    path = tmp_path / "adblock.db"
    spec = RpzSpec(custom_domains=["ads.example.net"], wildcard_domains=["tracker.example"], wildcard_enabled=True)
    path.write_text(generate_rpz_zone("adblock", spec), encoding="utf-8")
    assert DnsPythonZoneValidator("adblock").validate(path).ok is True


def test_setup_rpz_declares_zone_in_every_view(ops, config, reloader):
    ops.setup_rpz(RpzSpec(custom_domains="ads.example.net", blocklists=[ADBLOCK]))

    text = _conf(config)
    views = {view.name: view for view in document.list_views(text)}
    assert "adblock" in views["internal"].zones
    assert "adblock" in views["external"].zones
    zone = document.find_zone(text, "adblock")
    assert zone.allow_query == ["any"]
    assert zone.file == str(config.zones_dir / "adblock.db")
    names = [record.name for record in parse_records(ops.rpz_path.read_text(encoding="utf-8"))]
    assert names == ["@", "ads.example.net", "pixel.example.com", "banner.example.org"]
    assert reloader.calls == 1
    assert ops.settings_store.load().find_view("external").zones == ["adblock"]


def test_refreshing_rpz_only_rewrites_zone_file(ops, config, reloader):
    ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net"]))
    declared = _conf(config)

    result = ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net", "tracker.example.org"]))

    assert _conf(config) == declared
    assert result.target == ops.rpz_path
    assert "tracker.example.org" in ops.rpz_path.read_text(encoding="utf-8")
    assert reloader.calls == 2
    assert list(config.zones_dir.glob("adblock.db.backup.*"))


def test_setup_rpz_without_views(make_ops, config):
    ops = make_ops("")
    ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net"]))
    assert document.zone_container(_conf(config), "adblock") is None


def test_rejected_rpz_setup_removes_zone_file(config):
    (config.zones_dir / "db.example.com").write_text(ZONE_TEXT, encoding="utf-8")
    config.named_conf_path.write_text(NAMED_CONF, encoding="utf-8")
    ops = ZoneOperations(
        config,
        settings_store=SettingsStore(config.settings_path),
        validator=FakeValidator(ok=False, output="unknown option"),
        reloader=FakeReloader(),
        zone_validator_factory=lambda zone: None,
    )
    with pytest.raises(ValidationRejectedError):
        ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net"]))
    assert _conf(config) == NAMED_CONF
    assert not ops.rpz_path.exists()


def test_rejected_rpz_zone_file_leaves_document_alone(ops, config):
    ops.zone_validator_factory = lambda zone: FakeValidator(ok=False, output="bad owner name")
    with pytest.raises(ValidationRejectedError):
        ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net"]))
    assert _conf(config) == NAMED_CONF
    assert not ops.rpz_path.exists()


def test_remove_rpz(ops, config):
    ops.setup_rpz(RpzSpec(custom_domains=["ads.example.net"]))

    result = ops.remove_rpz()

    text = _conf(config)
    assert result.changed is True
    assert document.locate_zone(text, "adblock") is None
    assert not ops.rpz_path.exists()
    assert list(config.zones_dir.glob("adblock.db.backup.*"))
    assert ops.remove_rpz().changed is False

"""Tests for zone file parsing, formatting and editing."""

from datetime import date

import pytest

from bind9_dash.models import InvalidInputError, NotFoundError, RecordKey, ResourceRecord, ValidationRejectedError
from bind9_dash.zonefile import (
    EditPolicy,
    ZoneFileOptions,
    ZoneRecordStore,
    append_record,
    bump_serial,
    default_ttl_of,
    extract_serial,
    format_record,
    generate_serial,
    generate_zone_file,
    parse_records,
    placeholder_slave_zone,
    remove_record,
    replace_record,
)

from conftest import ZONE_TEXT, FakeValidator

ZONE = '''$TTL 3600
$ORIGIN example.com.
@   IN SOA ns1.example.com. admin.example.com. (
        2024010101 ; Serial
        7200 3600 1209600 3600 )
; name servers
@   IN NS ns1.example.com.
    IN NS ns2.example.com.
www 300 IN A 192.0.2.1 ; web
txt IN TXT "v=spf1; -all"
mail IN MX 20 mx.example.com.
_sip._tcp IN SRV 5 10 5060 sip.example.com.
'''


def test_parse_records():
    records = parse_records(ZONE)
    assert records == [
        ResourceRecord("@", "NS", "ns1.example.com."),
        ResourceRecord("@", "NS", "ns2.example.com."),
        ResourceRecord("www", "A", "192.0.2.1", ttl=300),
        ResourceRecord("txt", "TXT", '"v=spf1; -all"'),
        ResourceRecord("mail", "MX", "mx.example.com.", priority=20),
        ResourceRecord("_sip._tcp", "SRV", "sip.example.com.", priority=5, weight=10, port=5060),
    ]


def test_parse_records_with_default_ttl():
    records = parse_records(ZONE, default_ttl=default_ttl_of(ZONE))
    assert [record.ttl for record in records] == [3600, 3600, 300, 3600, 3600, 3600]


def test_format_record_alignment():
    line = format_record(ResourceRecord("www", "A", "192.0.2.10", ttl=300))
    assert line.split() == ["www", "300", "IN", "A", "192.0.2.10"]
    assert line.index("300") == 16
    assert line.index(" IN ") == 24


def test_format_record_defaults():
    mx = format_record(ResourceRecord("@", "MX", "mail.example.com."))
    assert mx.split() == ["@", "IN", "MX", "10", "mail.example.com."]
    srv = format_record(ResourceRecord("_sip._tcp", "SRV", "sip.example.com."))
    assert srv.split() == ["_sip._tcp", "IN", "SRV", "10", "0", "0", "sip.example.com."]


def test_format_then_parse_round_trip():
    records = [
        ResourceRecord("www", "A", "192.0.2.10", ttl=300),
        ResourceRecord("@", "MX", "mail.example.com.", priority=10),
        ResourceRecord("_ldap._tcp", "SRV", "dc.example.com.", ttl=600, priority=0, weight=5, port=389),
        ResourceRecord("txt", "TXT", '"hello world"'),
    ]
    text = "".join(f"{format_record(record)}\n" for record in records)
    assert parse_records(text) == records


def test_bump_serial_increments_by_one_and_keeps_column():
    bumped = bump_serial(ZONE_TEXT)
    assert extract_serial(bumped) == 2024010102
    old_line = next(line for line in ZONE_TEXT.splitlines() if "Serial" in line)
    new_line = next(line for line in bumped.splitlines() if "Serial" in line)
    assert old_line.index(";") == new_line.index(";")


def test_bump_serial_width_and_growth():
    assert bump_serial("0009 ; Serial\n") == "0010 ; Serial\n"
    grown = bump_serial("9    ; serial\n")
    assert grown == "10   ; serial\n"


def test_bump_serial_without_serial_is_unchanged():
    text = "$TTL 3600\n@ IN NS ns1.example.com.\n"
    assert bump_serial(text) == text
    assert extract_serial(text) is None


def test_generate_serial():
    assert generate_serial(date(2024, 3, 5)) == "2024030501"


def test_generate_forward_zone():
    text = generate_zone_file("example.com", today=date(2024, 3, 5))
    assert extract_serial(text) == 2024030501
    assert default_ttl_of(text) == 3600
    assert parse_records(text) == [
        ResourceRecord("@", "NS", "ns1.example.com."),
        ResourceRecord("@", "A", "127.0.0.1"),
        ResourceRecord("ns1", "A", "127.0.0.1"),
    ]
    assert "admin.example.com." in text


def test_generate_forward_zone_with_external_nameserver():
    options = ZoneFileOptions(ttl=600, nameserver="ns.provider.net", address="192.0.2.7")
    records = parse_records(generate_zone_file("example.com", options))
    assert records == [
        ResourceRecord("@", "NS", "ns.provider.net."),
        ResourceRecord("@", "A", "192.0.2.7"),
    ]


def test_generate_reverse_zone_with_ptr_sweep():
    text = generate_zone_file("1.168.192.in-addr.arpa")
    records = parse_records(text)
    ptrs = [record for record in records if record.type == "PTR"]
    assert len(ptrs) == 254
    assert ptrs[0] == ResourceRecord("1", "PTR", "host1.example.com.")
    assert ptrs[-1] == ResourceRecord("254", "PTR", "host254.example.com.")
    glue = [record for record in records if record.type == "A"]
    assert glue == [ResourceRecord("ns1.1.168.192.in-addr.arpa.", "A", "192.168.1.1")]


def test_generate_reverse_zone_without_ptr_sweep():
    options = ZoneFileOptions(auto_generate_ptr=False, domain="corp.example", ns_address="192.168.1.53")
    text = generate_zone_file("1.168.192.in-addr.arpa", options)
    records = parse_records(text)
    assert [record.type for record in records] == ["NS", "A"]
    assert records[1].value == "192.168.1.53"
    assert "host1.corp.example." in text


def test_placeholder_slave_zone():
    text = placeholder_slave_zone("example.org")
    assert "$ORIGIN example.org." in text
    assert extract_serial(text) == 1
    assert parse_records(text) == [ResourceRecord("@", "NS", "ns1.example.org.")]


def test_append_replace_remove():
    text = append_record(ZONE_TEXT, ResourceRecord("ftp", "CNAME", "www"))
    assert parse_records(text)[-1] == ResourceRecord("ftp", "CNAME", "www")

    replaced = replace_record(text, RecordKey("www", "a"), ResourceRecord("www", "A", "192.0.2.99", ttl=60))
    assert ResourceRecord("www", "A", "192.0.2.99", ttl=60) in parse_records(replaced)
    assert len(parse_records(replaced)) == len(parse_records(text))

    removed = remove_record(replaced, RecordKey("ftp", "CNAME"))
    assert [record.name for record in parse_records(removed)] == ["@", "@", "ns1", "www", "mail"]


def test_first_matching_record_wins_and_value_narrows():
    text = "@ IN A 192.0.2.1\n@ IN A 192.0.2.2\n"
    assert parse_records(remove_record(text, RecordKey("@", "A"))) == [ResourceRecord("@", "A", "192.0.2.2")]
    narrowed = remove_record(text, RecordKey("@", "A", "192.0.2.2"))
    assert parse_records(narrowed) == [ResourceRecord("@", "A", "192.0.2.1")]
    with pytest.raises(NotFoundError):
        remove_record(text, RecordKey("@", "A", "192.0.2.3"))


def test_remove_record_hands_owner_to_continuation_line():
    text = "@ IN NS ns1.example.com.\n    IN NS ns2.example.com.\n"
    result = remove_record(text, RecordKey("@", "NS", "ns1.example.com."))
    assert parse_records(result) == [ResourceRecord("@", "NS", "ns2.example.com.")]


@pytest.fixture
def zone_path(tmp_path):
    path = tmp_path / "db.example.com"
    path.write_text(ZONE_TEXT, encoding="utf-8")
    return path


def test_store_add_record_bumps_serial_once(zone_path):
    store = ZoneRecordStore("example.com", zone_path)
    store.add_record(ResourceRecord("api", "A", "192.0.2.20"))
    assert extract_serial(zone_path.read_text(encoding="utf-8")) == 2024010102
    store.delete_record(RecordKey("api", "A"))
    assert extract_serial(zone_path.read_text(encoding="utf-8")) == 2024010103
    assert "api" not in [record.name for record in store.read_records()]
    assert list(zone_path.parent.glob("db.example.com.backup.*"))


def test_store_update_record(zone_path):
    store = ZoneRecordStore("example.com", zone_path)
    store.update_record(RecordKey("mail", "MX"), ResourceRecord("mail", "MX", "mx2.example.com.", priority=20))
    mx = [record for record in store.read_records() if record.type == "MX"]
    assert mx == [ResourceRecord("mail", "MX", "mx2.example.com.", priority=20)]


def test_store_effective_ttl(zone_path):
    records = ZoneRecordStore("example.com", zone_path).read_records(effective_ttl=True)
    assert {record.name: record.ttl for record in records}["www"] == 300
    assert {record.name: record.ttl for record in records}["mail"] == 3600


def test_store_rejected_edit_leaves_file_untouched(zone_path):
    before = zone_path.read_bytes()
    store = ZoneRecordStore("example.com", zone_path, validator=FakeValidator(ok=False, output="bad"))
    with pytest.raises(ValidationRejectedError):
        store.add_record(ResourceRecord("api", "A", "192.0.2.20"))
    assert zone_path.read_bytes() == before


def test_store_skips_validation_when_disabled(zone_path):
    validator = FakeValidator(ok=False)
    store = ZoneRecordStore("example.com", zone_path, validator=validator)
    store.add_record(ResourceRecord("api", "A", "192.0.2.20"), EditPolicy(backup=False, validate=False))
    assert validator.seen == []
    assert not list(zone_path.parent.glob("db.example.com.backup.*"))


def test_store_rejects_bad_records(zone_path):
    store = ZoneRecordStore("example.com", zone_path)
    with pytest.raises(InvalidInputError):
        store.add_record(ResourceRecord("", "A", "192.0.2.1"))
    with pytest.raises(InvalidInputError):
        store.add_record(ResourceRecord("bad name", "A", "192.0.2.1"))


def test_store_missing_file(tmp_path):
    with pytest.raises(NotFoundError):
        ZoneRecordStore("example.com", tmp_path / "missing").read_records()

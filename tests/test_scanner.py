"""Tests for locating brace blocks."""

import pytest

from bind9_dash.models import MalformedDocumentError, NotFoundError
from bind9_dash.scanner import find_block, find_statement, iter_blocks, mask_blocks, require_block

CONF = '''view "internal" {
    match-clients { 10.0.0.0/8; };

    zone "example.com" {
        type master;
        file "zones/db.example.com";
    };
};

zone "example.org" {
    type master;
    file "zones/db.example.org";
};
'''


def test_find_zone_nested_in_view():
    block = find_block(CONF, "zone", "example.com")
    assert block is not None
    assert block.kind == "zone"
    assert CONF[block.start :].startswith('zone "example.com"')
    assert CONF[block.open_brace] == "{"
    assert CONF[block.close_brace] == "}"
    assert "type master;" in block.body


def test_view_block_spans_nested_zone():
    view = find_block(CONF, "view", "internal")
    zone = find_block(CONF, "zone", "example.com")
    assert view.open_brace < zone.start < zone.end <= view.close_brace
    assert CONF[view.end :].startswith('zone "example.org"')


def test_keyword_case_insensitive_name_exact():
    text = 'ZONE "Example.net" { type master; };\n'
    assert find_block(text, "zone", "Example.net") is not None
    assert find_block(text, "zone", "example.net") is None


def test_header_inside_comment_is_ignored():
    text = (
        '// zone "a.com" { type master; };\n'
        '/* zone "a.com" { type hint; }; */\n'
        'zone "a.com" { type slave; };\n'
    )
    block = find_block(text, "zone", "a.com")
    assert "slave" in block.body
    assert len(list(iter_blocks(text, "zone"))) == 1


def test_braces_inside_strings_and_comments_do_not_count():
    text = 'zone "x.com" {\n    file "odd{name";\n    # stray }\n    type master;\n};\nzone "y.com" { };\n'
    block = find_block(text, "zone", "x.com")
    assert "type master;" in block.body
    assert text[block.end :].startswith('zone "y.com"')


def test_prefixed_keyword_is_not_a_header():
    text = 'subzone "a.com" { };\n'
    assert find_block(text, "zone", "a.com") is None


def test_unbalanced_block_returns_none_and_require_raises():
    text = 'zone "broken.com" {\n    type master;\n'
    assert find_block(text, "zone", "broken.com") is None
    with pytest.raises(MalformedDocumentError):
        require_block(text, "zone", "broken.com")


def test_require_missing_block_raises_not_found():
    with pytest.raises(NotFoundError):
        require_block(CONF, "view", "guest")


def test_iter_blocks_document_order():
    names = [block.name for block in iter_blocks(CONF, "zone")]
    assert names == ["example.com", "example.org"]


def test_iter_blocks_within_range():
    view = find_block(CONF, "view", "internal")
    names = [block.name for block in iter_blocks(CONF, "zone", view.open_brace + 1, view.close_brace)]
    assert names == ["example.com"]


def test_iter_blocks_raises_on_unbalanced_braces():
    text = 'zone "a.com" { type master; };\nzone "b.com" { type master;\n'
    with pytest.raises(MalformedDocumentError):
        list(iter_blocks(text, "zone"))


def test_block_end_consumes_semicolon_and_whitespace():
    text = 'zone "a.com" { };  \n\nzone "b.com" { };\n'
    block = find_block(text, "zone", "a.com")
    assert text[block.end :].startswith('zone "b.com"')


def test_find_statement():
    view = find_block(CONF, "view", "internal")
    statement = find_statement(view.body, "match-clients")
    assert statement is not None
    assert statement.body.strip() == "10.0.0.0/8;"
    assert find_statement(view.body, "allow-transfer") is None


def test_mask_blocks_keeps_offsets():
    masked = mask_blocks(CONF, "view")
    assert len(masked) == len(CONF)
    assert masked.count("\n") == CONF.count("\n")
    names = [block.name for block in iter_blocks(masked, "zone")]
    assert names == ["example.org"]
    block = find_block(masked, "zone", "example.org")
    assert CONF[block.start : block.end] == masked[block.start : block.end]

"""Read and rewrite views, zones and ACLs of a configuration document.

The text buffer is the only source of truth: every function re-scans the
text it is given and returns new text instead of mutating a parsed tree.
Nothing in this module touches the file system.
"""

from __future__ import annotations

import re

from .editor import (
    insert_before,
    insert_into,
    insert_top_level,
    remove_block,
    replace_block,
    replace_body,
)
from .models import (
    ZONE_TYPE_ALIASES,
    AccessControl,
    AclDefinition,
    ConfigBlock,
    ConflictError,
    NotFoundError,
    View,
    Zone,
)
from .renderer import render_acl_block, render_match_clients, render_view_block, render_zone_block
from .scanner import find_block, find_statement, iter_blocks, mask_blocks, require_block

TYPE_PATTERN = re.compile(r"(?<![\w-])type\s+(?P<type>[\w-]+)\s*;", re.IGNORECASE)
FILE_PATTERN = re.compile(r'(?<![\w-])file\s+"(?P<file>[^"]+)"\s*;', re.IGNORECASE)
LEGACY_DENY_PATTERN = re.compile(r"^[ \t]*//[ \t]*deny:(?P<entries>[^\n]*)\n?", re.IGNORECASE | re.MULTILINE)


def _list_tokens(body: str) -> list[str]:
    """Split the interior of an address list into its entries."""
    without_comments = re.sub(r"(//|#)[^\n]*", "", body)
    return [token.strip() for token in without_comments.split(";") if token.strip()]


def _statement_tokens(body: str, *keywords: str) -> list[str]:
    """Return the entries of the first braced statement named by ``keywords``."""
    for keyword in keywords:
        statement = find_statement(body, keyword)
        if statement is not None:
            return _list_tokens(statement.body)
    return []


def _zone_variants(name: str) -> list[str]:
    """Return the spellings a zone may use in the document."""
    stripped = name.rstrip(".")
    if not stripped:
        return ["."]
    return [stripped, f"{stripped}."]


def parse_zone(block: ConfigBlock, view: str | None = None) -> Zone:
    """Build a Zone from a scanned zone block."""
    body = block.body
    type_match = TYPE_PATTERN.search(body)
    zone_type = type_match.group("type").lower() if type_match else "master"
    file_match = FILE_PATTERN.search(body)
    return Zone(
        name=block.name,
        type=ZONE_TYPE_ALIASES.get(zone_type, zone_type),
        file=file_match.group("file") if file_match else None,
        view=view,
        masters=_statement_tokens(body, "masters", "primaries"),
        allow_transfer=_statement_tokens(body, "allow-transfer"),
        allow_update=_statement_tokens(body, "allow-update"),
        allow_query=_statement_tokens(body, "allow-query"),
    )


def parse_view(block: ConfigBlock) -> View:
    """Build a View, its access control and its zone names from a block."""
    body = block.body
    allow: list[str] = []
    deny: list[str] = []
    for token in _statement_tokens(body, "match-clients"):
        if token.startswith("!"):
            deny.append(token[1:].strip())
        else:
            allow.append(token)
    for match in LEGACY_DENY_PATTERN.finditer(body):
        deny.extend(_list_tokens(match.group("entries")))
    zones = [zone_block.name for zone_block in iter_blocks(body, "zone")]
    return View(name=block.name, acl=AccessControl(allow=allow or ["any"], deny=deny), zones=zones)


def list_views(text: str) -> list[View]:
    """Return the views of the document in order."""
    return [parse_view(block) for block in iter_blocks(text, "view")]


def list_zones(text: str) -> list[Zone]:
    """Return every zone once, views first and then the top level."""
    zones: dict[str, Zone] = {}
    for view_block in iter_blocks(text, "view"):
        for zone_block in iter_blocks(text, "zone", view_block.open_brace + 1, view_block.close_brace):
            zones.setdefault(zone_block.name, parse_zone(zone_block, view=view_block.name))
    for zone_block in iter_blocks(mask_blocks(text, "view"), "zone"):
        zones.setdefault(zone_block.name, parse_zone(zone_block))
    return list(zones.values())


def list_acls(text: str) -> list[AclDefinition]:
    """Return the named ACLs defined in the document."""
    return [AclDefinition(name=block.name, entries=_list_tokens(block.body)) for block in iter_blocks(text, "acl")]


def locate_zone(text: str, name: str) -> ConfigBlock | None:
    """Return the first zone block for ``name``, with or without trailing dot."""
    found: list[ConfigBlock] = []
    for variant in _zone_variants(name):
        block = find_block(text, "zone", variant)
        if block is not None:
            found.append(block)
    if not found:
        return None
    return min(found, key=lambda block: block.start)


def zone_container(text: str, name: str) -> str | None:
    """Return the view holding the zone, or None for the top level."""
    block = locate_zone(text, name)
    if block is None:
        raise NotFoundError(f'Zone "{name}" not found.')
    for view_block in iter_blocks(text, "view"):
        if view_block.open_brace < block.start < view_block.close_brace:
            return view_block.name
    return None


def find_zone(text: str, name: str) -> Zone | None:
    """Return the parsed zone named ``name``, or None."""
    block = locate_zone(text, name)
    if block is None:
        return None
    return parse_zone(block, view=zone_container(text, name))


def remove_zone(text: str, name: str) -> str:
    """Remove every block for the zone; unchanged text if there is none."""
    while (block := locate_zone(text, name)) is not None:
        text = remove_block(text, block)
    return text


def add_view(text: str, name: str, acl: AccessControl) -> str:
    """Append a new, empty view."""
    if find_block(text, "view", name) is not None:
        raise ConflictError(f'View "{name}" already exists.')
    return insert_top_level(text, render_view_block(name, acl))


def ensure_view(text: str, name: str, acl: AccessControl) -> str:
    """Return text that contains the view, creating it with ``acl`` if needed."""
    if find_block(text, "view", name) is not None:
        return text
    return add_view(text, name, acl)


def remove_view(text: str, name: str) -> str:
    """Remove the view block and everything nested in it."""
    return remove_block(text, require_block(text, "view", name))


def set_view_acl(text: str, name: str, acl: AccessControl) -> str:
    """Replace the view's match-clients list, keeping its zones in place."""
    block = require_block(text, "view", name)
    body = LEGACY_DENY_PATTERN.sub("", block.body)
    while (statement := find_statement(body, "match-clients")) is not None:
        body = body[: statement.start] + body[statement.end :]
    indent = "    "
    lines = [line for line in body.split("\n")[1:] if line.strip()]
    if lines:
        indent = lines[0][: len(lines[0]) - len(lines[0].lstrip(" \t"))]
    remainder = body.lstrip(" \t\n")
    new_body = f"\n{indent}{render_match_clients(acl).strip()}\n"
    if remainder.strip():
        new_body += f"\n{indent}{remainder}"
    else:
        new_body += remainder
    return replace_body(text, block, new_body)


def insert_zone(
    text: str,
    zone: Zone,
    view: str | None = None,
    acl: AccessControl | None = None,
) -> str:
    """Insert a freshly rendered zone block into ``view`` or the top level."""
    block_text = render_zone_block(zone)
    if view is None:
        return insert_top_level(text, block_text)
    text = ensure_view(text, view, acl or AccessControl())
    return insert_into(text, require_block(text, "view", view), block_text)


def insert_zone_everywhere(text: str, zone: Zone) -> str:
    """Insert ``zone`` into each view lacking it, or the top level when there are no views."""
    views = list_views(text)
    if not views:
        return text if locate_zone(text, zone.name) is not None else insert_zone(text, zone)
    wanted = set(_zone_variants(zone.name))
    for view in views:
        if not wanted.intersection(view.zones):
            text = insert_zone(text, zone, view.name)
    return text


def rewrite_zone(text: str, zone: Zone) -> str:
    """Replace the zone's block in place with one rendered from ``zone``."""
    block = locate_zone(text, zone.name)
    if block is None:
        raise NotFoundError(f'Zone "{zone.name}" not found.')
    return replace_block(text, block, render_zone_block(zone))


def move_zone_to_container(
    text: str,
    zone_name: str,
    zone_file: str | None,
    target_view: str | None,
    target_acl: AccessControl | None = None,
) -> str:
    """Return text with the zone defined exactly once, inside ``target_view``.

    The zone keeps its current type, masters and allow-transfer list
    (``master`` when the zone is not in the document yet). ``target_view``
    None means the top level. The function is pure, so the result can be
    validated before anything is written.
    """
    existing_block = locate_zone(text, zone_name)
    if existing_block is not None:
        zone = parse_zone(existing_block)
    else:
        zone = Zone(name=zone_name.rstrip(".") or ".", allow_update=["none"])
    if zone_file:
        zone.file = zone_file
    zone.view = target_view
    cleaned = remove_zone(text, zone_name)
    return insert_zone(cleaned, zone, target_view, target_acl)


def add_acl(text: str, name: str, entries: list[str]) -> str:
    """Define a named ACL ahead of the first view or zone that may use it."""
    if find_block(text, "acl", name) is not None:
        raise ConflictError(f'ACL "{name}" already exists.')
    block_text = render_acl_block(name, entries)
    anchors = [block.start for kind in ("view", "zone") for block in iter_blocks(text, kind)]
    if anchors:
        return insert_before(text, min(anchors), block_text)
    return insert_top_level(text, block_text)


def remove_acl(text: str, name: str) -> str:
    """Remove a named ACL."""
    return remove_block(text, require_block(text, "acl", name))

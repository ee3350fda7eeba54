"""Parse, format and edit zone master files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Callable, Iterator

from .models import InvalidInputError, NotFoundError, RecordKey, ResourceRecord, StorageError, fqdn
from .pipeline import CommitPipeline, CommitResult, Reloader, Validator, locked
from .renderer import generated_at, render_template

LOG = logging.getLogger("bind9_dash")

SERIAL_PATTERN = re.compile(r"(?P<serial>\d+)(?P<gap>[ \t]*)(?P<comment>;[ \t]*serial)", re.IGNORECASE)
TTL_DIRECTIVE = re.compile(r"^\$TTL\s+(?P<ttl>\d+)\s*(?:;.*)?$", re.IGNORECASE | re.MULTILINE)
CLASSES = {"IN", "CH", "HS"}


def _strip_comment(line: str) -> str:
    """Drop a trailing ``;`` comment that is not inside a quoted string."""
    in_quotes = False
    escaped = False
    for index, ch in enumerate(line):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
        elif ch == ";" and not in_quotes:
            return line[:index]
    return line


@dataclass
class _RecordLines:
    """A parsed record and the physical lines it occupies."""

    first: int
    last: int
    record: ResourceRecord
    inherited_owner: bool


def _parse_fields(owner: str, tokens: list[str]) -> ResourceRecord | None:
    """Turn the tokens after the owner into a record, or None if unusable."""
    ttl: int | None = None
    index = 0
    for _ in range(2):
        if index < len(tokens) and tokens[index].isdigit() and ttl is None:
            ttl = int(tokens[index])
            index += 1
        if index < len(tokens) and tokens[index].upper() in CLASSES:
            index += 1
    if index >= len(tokens) - 1:
        return None
    rtype = tokens[index].upper()
    rdata = tokens[index + 1 :]
    if rtype == "MX" and len(rdata) >= 2 and rdata[0].isdigit():
        return ResourceRecord(owner, rtype, " ".join(rdata[1:]), ttl=ttl, priority=int(rdata[0]))
    if rtype == "SRV" and len(rdata) >= 4 and all(part.isdigit() for part in rdata[:3]):
        return ResourceRecord(
            owner,
            rtype,
            " ".join(rdata[3:]),
            ttl=ttl,
            priority=int(rdata[0]),
            weight=int(rdata[1]),
            port=int(rdata[2]),
        )
    return ResourceRecord(owner, rtype, " ".join(rdata), ttl=ttl)


def _iter_record_lines(lines: list[str]) -> Iterator[_RecordLines]:
    """Yield every non-SOA record with the span of lines it was read from.

    Comments, blank lines and ``$`` directives are skipped. Parenthesised
    records are joined across lines before they are parsed.
    """
    owner: str | None = None
    index = 0
    while index < len(lines):
        first = index
        raw = lines[index]
        content = _strip_comment(raw)
        index += 1
        if not content.strip() or content.lstrip().startswith("$"):
            continue
        depth = content.count("(") - content.count(")")
        while depth > 0 and index < len(lines):
            more = _strip_comment(lines[index])
            content += " " + more
            depth += more.count("(") - more.count(")")
            index += 1
        tokens = content.replace("(", " ").replace(")", " ").split()
        inherited = raw[:1] in (" ", "\t")
        if not inherited:
            owner = tokens.pop(0)
        if owner is None or not tokens:
            continue
        record = _parse_fields(owner, tokens)
        if record is None or record.type == "SOA":
            continue
        yield _RecordLines(first=first, last=index - 1, record=record, inherited_owner=inherited)


def parse_records(text: str, default_ttl: int | None = None) -> list[ResourceRecord]:
    """Return the records of a zone file in file order.

    Records without an explicit TTL get ``default_ttl``; None keeps them
    inheriting the zone's ``$TTL``.
    """
    records = []
    for item in _iter_record_lines(text.splitlines()):
        record = item.record
        if record.ttl is None and default_ttl is not None:
            record = replace(record, ttl=default_ttl)
        records.append(record)
    return records


def format_record(record: ResourceRecord) -> str:
    """Return one aligned zone file line for ``record``."""
    name = record.name.ljust(15)
    ttl = ("" if record.ttl is None else str(record.ttl)).ljust(8)
    rtype = record.type.upper()
    if rtype == "MX":
        rdata = f"{record.priority if record.priority is not None else 10} {record.value}"
    elif rtype == "SRV":
        priority = record.priority if record.priority is not None else 10
        rdata = f"{priority} {record.weight or 0} {record.port or 0} {record.value}"
    else:
        rdata = record.value
    return f"{name} {ttl} IN {rtype.ljust(8)} {rdata}"


def extract_serial(text: str) -> int | None:
    """Return the SOA serial marked with a ``; Serial`` comment, or None."""
    match = SERIAL_PATTERN.search(text)
    return int(match.group("serial")) if match else None


def bump_serial(text: str) -> str:
    """Increment the serial by one, keeping its width and comment column.

    Text without a recognisable serial is returned unchanged.
    """
    match = SERIAL_PATTERN.search(text)
    if not match:
        return text
    old = match.group("serial")
    new = str(int(old) + 1).zfill(len(old))
    gap = match.group("gap")
    grown = len(new) - len(old)
    if grown and len(gap) > grown:
        gap = gap[:-grown]
    return f"{text[: match.start()]}{new}{gap or ' '}{match.group('comment')}{text[match.end() :]}"


def generate_serial(today: date | None = None) -> str:
    """Return the first serial of the day, ``YYYYMMDD01``."""
    return f"{(today or date.today()):%Y%m%d}01"


def default_ttl_of(text: str) -> int | None:
    """Return the numeric ``$TTL`` of a zone file, if any."""
    match = TTL_DIRECTIVE.search(text)
    return int(match.group("ttl")) if match else None


@dataclass
class ZoneFileOptions:
    """Values used to generate a new zone master file."""

    ttl: int = 3600
    nameserver: str | None = None
    email: str | None = None
    refresh: int = 7200
    retry: int = 3600
    expire: int = 1209600
    minimum: int = 3600
    address: str = "127.0.0.1"
    ns_address: str | None = None
    domain: str = "example.com."
    auto_generate_ptr: bool = True


def _reverse_prefix(origin: str) -> str:
    """Return the dotted network prefix of an in-addr.arpa origin."""
    labels = re.sub(r"\.?in-addr\.arpa\.?$", "", origin, flags=re.IGNORECASE).split(".")
    return ".".join(reversed([label for label in labels if label]))


def generate_zone_file(
    name: str,
    options: ZoneFileOptions | None = None,
    today: date | None = None,
    templates_dir: Path | None = None,
) -> str:
    """Render a brand-new master file for the zone ``name``."""
    options = options or ZoneFileOptions()
    origin = fqdn(name)
    nameserver = fqdn(options.nameserver or f"ns1.{origin}")
    email = fqdn(options.email or f"admin.{origin}")
    reverse = "in-addr.arpa" in origin.lower()
    ns_host = None
    if not reverse and nameserver.lower().endswith(f".{origin.lower()}"):
        ns_host = nameserver[: -len(origin) - 1]
    if reverse and options.auto_generate_ptr:
        LOG.info("Generating 254 PTR records for %s", origin)
    return render_template(
        "zone.j2",
        templates_dir=templates_dir,
        origin=origin,
        generated_at=generated_at(),
        ttl=options.ttl,
        nameserver=nameserver,
        email=email,
        serial=generate_serial(today),
        refresh=options.refresh,
        retry=options.retry,
        expire=options.expire,
        minimum=options.minimum,
        reverse=reverse,
        ns_address=options.ns_address or f"{_reverse_prefix(origin)}.1",
        auto_generate_ptr=options.auto_generate_ptr,
        domain=fqdn(options.domain),
        address=options.address,
        ns_host=ns_host,
    )


def placeholder_slave_zone(name: str, ttl: int = 3600, templates_dir: Path | None = None) -> str:
    """Render the minimal file a slave zone starts from before its first transfer."""
    origin = fqdn(name)
    return render_template(
        "slave_placeholder.j2",
        templates_dir=templates_dir,
        origin=origin,
        ttl=ttl,
        nameserver=f"ns1.{origin}",
    )


def _matches(record: ResourceRecord, key: RecordKey) -> bool:
    """Return True if ``record`` is the one ``key`` identifies."""
    if record.name != key.name or record.type != key.type.upper():
        return False
    return key.value is None or record.value == key.value


def _find(lines: list[str], key: RecordKey) -> _RecordLines:
    """Return the first record matching ``key`` or raise NotFoundError."""
    for item in _iter_record_lines(lines):
        if _matches(item.record, key):
            return item
    raise NotFoundError(f"Record not found: {key.name} {key.type.upper()}")


def _join(lines: list[str], had_newline: bool) -> str:
    text = "\n".join(lines)
    return f"{text}\n" if had_newline or not text else text


def append_record(text: str, record: ResourceRecord) -> str:
    """Append ``record`` as the last line of the file."""
    body = text if not text or text.endswith("\n") else f"{text}\n"
    return f"{body}{format_record(record)}\n"


def replace_record(text: str, key: RecordKey, record: ResourceRecord) -> str:
    """Replace the first record matching ``key`` with ``record``."""
    lines = text.splitlines()
    item = _find(lines, key)
    lines[item.first : item.last + 1] = [format_record(record)]
    return _join(lines, text.endswith("\n"))


def remove_record(text: str, key: RecordKey) -> str:
    """Remove the first record matching ``key``.

    A following line that inherited its owner from the removed record gets
    that owner written out.
    """
    lines = text.splitlines()
    item = _find(lines, key)
    following = item.last + 1
    if not item.inherited_owner and following < len(lines) and lines[following][:1] in (" ", "\t"):
        if _strip_comment(lines[following]).strip():
            lines[following] = f"{item.record.name}{lines[following]}"
    del lines[item.first : item.last + 1]
    return _join(lines, text.endswith("\n"))


def _check_record(record: ResourceRecord) -> ResourceRecord:
    """Reject records the formatter cannot write as a single valid line."""
    if not record.name.strip() or not record.type.strip() or not record.value.strip():
        raise InvalidInputError("Record name, type and value are required.")
    if any(ch in record.name for ch in " \t\n;"):
        raise InvalidInputError(f"Invalid record name: {record.name!r}")
    if "\n" in record.value:
        raise InvalidInputError("Record value must be a single line.")
    if record.ttl is not None and record.ttl < 0:
        raise InvalidInputError("TTL must not be negative.")
    return replace(record, name=record.name.strip(), type=record.type.strip().upper(), value=record.value.strip())


@dataclass(frozen=True)
class EditPolicy:
    """How a zone file edit is committed."""

    backup: bool = True
    validate: bool = True
    apply: bool = False


class ZoneRecordStore:
    """File-backed record editing for one zone master file."""

    def __init__(
        self,
        zone: str,
        path: Path,
        validator: Validator | None = None,
        reloader: Reloader | None = None,
    ):
        self.zone = zone
        self.path = Path(path)
        self.validator = validator
        self.reloader = reloader

    def _read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(f"Zone file not found: {self.path}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {self.path}: {exc}") from exc

    def read_records(self, effective_ttl: bool = False) -> list[ResourceRecord]:
        """Return the records of the zone file."""
        text = self._read()
        return parse_records(text, default_ttl_of(text) if effective_ttl else None)

    def _edit(self, change: Callable[[str], str], policy: EditPolicy) -> CommitResult:
        """Apply ``change`` and the serial bump, then commit under the file lock."""
        with locked(self.path):
            text = change(self._read())
            bumped = bump_serial(text)
            if bumped == text:
                LOG.warning("No serial found in %s; serial left unchanged.", self.path)
            pipeline = CommitPipeline(self.validator if policy.validate else None, self.reloader)
            return pipeline.commit(self.path, bumped, apply=policy.apply, backup=policy.backup)

    def add_record(self, record: ResourceRecord, policy: EditPolicy | None = None) -> CommitResult:
        """Append a record and bump the serial."""
        record = _check_record(record)
        LOG.info("Adding %s %s to %s", record.name, record.type, self.zone)
        return self._edit(lambda text: append_record(text, record), policy or EditPolicy())

    def update_record(
        self,
        key: RecordKey,
        record: ResourceRecord,
        policy: EditPolicy | None = None,
    ) -> CommitResult:
        """Replace the first record matching ``key`` and bump the serial."""
        record = _check_record(record)
        LOG.info("Updating %s %s in %s", key.name, key.type.upper(), self.zone)
        return self._edit(lambda text: replace_record(text, key, record), policy or EditPolicy())

    def delete_record(self, key: RecordKey, policy: EditPolicy | None = None) -> CommitResult:
        """Remove the first record matching ``key`` and bump the serial."""
        LOG.info("Deleting %s %s from %s", key.name, key.type.upper(), self.zone)
        return self._edit(lambda text: remove_record(text, key), policy or EditPolicy())

    def create_zone_file(self, content: str, policy: EditPolicy | None = None) -> CommitResult:
        """Write a new zone file; an existing file is never overwritten."""
        policy = policy or EditPolicy()
        with locked(self.path):
            if self.path.exists():
                raise StorageError(f"Zone file already exists: {self.path}")
            pipeline = CommitPipeline(self.validator if policy.validate else None, None)
            return pipeline.commit(self.path, content, backup=False)

"""Response policy zone (ad blocking) generation."""

from __future__ import annotations

import ipaddress
import logging
import re
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .models import fqdn, normalize_tokens
from .renderer import generated_at, render_template
from .zonefile import generate_serial

LOG = logging.getLogger("bind9_dash")

MAX_BLOCKLIST_DOMAINS = 50000
DOMAIN_PATTERN = re.compile(r"^[a-z0-9_-]+(?:\.[a-z0-9_-]+)+$")
BIND_ZONE_LINE = re.compile(r'^\s*zone\s+"(?P<name>[^"]+)"', re.IGNORECASE)
ADBLOCK_RULE = re.compile(r"^\|\|?(?P<name>[^\^/$|]+)\^")
HOSTS_SINKHOLES = {"0.0.0.0", "127.0.0.1"}
NXDOMAIN_ACTIONS = {".", "nxdomain"}
NODATA_ACTIONS = {"*.", "nodata"}


class RpzSpec(BaseModel):
    """Schema for the domains a response policy zone blocks."""

    custom_domains: list[str] = Field(default_factory=list)
    wildcard_domains: list[str] = Field(default_factory=list)
    wildcard_enabled: bool = False
    redirect_to: str = "0.0.0.0"
    blocklists: list[str] = Field(default_factory=list)
    ttl: int = Field(default=86400, ge=0)

    @field_validator("custom_domains", "wildcard_domains", mode="before")
    @classmethod
    def _split_domains(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_tokens([value])
        return value

    @field_validator("redirect_to")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("redirect_to must not be empty")
        return value


def clean_domain(value: str) -> str | None:
    """Return a lowercased domain, or None for local names and junk."""
    name = value.strip().lower().rstrip(".")
    if not DOMAIN_PATTERN.match(name):
        return None
    if "local" in name:
        return None
    return name


def _blocklist_format(lines: list[str]) -> str:
    """Guess whether a list is BIND zones, AdBlock Plus rules or a hosts file."""
    if any(BIND_ZONE_LINE.match(line) for line in lines):
        return "bind"
    if any(line.startswith("|") and "^" in line for line in lines):
        return "adblock"
    return "hosts"


def _candidates(lines: list[str], kind: str) -> list[str]:
    names: list[str] = []
    for line in lines:
        if kind == "bind":
            match = BIND_ZONE_LINE.match(line)
            if match:
                names.append(match.group("name"))
        elif kind == "adblock":
            if line.startswith(("!", "[")):
                continue
            match = ADBLOCK_RULE.match(line)
            if match:
                names.append(match.group("name"))
        else:
            fields = line.split("#", 1)[0].split()
            if len(fields) >= 2 and fields[0] in HOSTS_SINKHOLES:
                names.extend(fields[1:])
    return names


def parse_blocklist(text: str, limit: int = MAX_BLOCKLIST_DOMAINS) -> list[str]:
    """Return the blocked domains of a BIND, AdBlock Plus or hosts file list.

    Duplicates, ``localhost`` and names containing ``local`` are dropped;
    at most ``limit`` domains are returned, in order of appearance.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    kind = _blocklist_format(lines)
    domains: dict[str, None] = {}
    for candidate in _candidates(lines, kind):
        name = clean_domain(candidate)
        if name is None or name in domains:
            continue
        if len(domains) >= limit:
            LOG.warning("Blocklist truncated to %s domains", limit)
            break
        domains[name] = None
    LOG.info("Parsed %s domains from %s blocklist", len(domains), kind)
    return list(domains)


def policy_action(redirect_to: str) -> tuple[str, str]:
    """Return the record type and data that answer a blocked name.

    An address gives an A or AAAA record, ``.`` (or ``nxdomain``) the
    NXDOMAIN policy, ``*.`` (or ``nodata``) the NODATA policy and any other
    value a CNAME to that host.
    """
    target = redirect_to.strip()
    lowered = target.lower()
    if lowered in NXDOMAIN_ACTIONS:
        return "CNAME", "."
    if lowered in NODATA_ACTIONS:
        return "CNAME", "*."
    try:
        address = ipaddress.ip_address(target)
    except ValueError:
        return "CNAME", fqdn(lowered)
    return ("AAAA" if address.version == 6 else "A"), str(address)


def blocked_names(spec: RpzSpec, limit: int = MAX_BLOCKLIST_DOMAINS) -> list[str]:
    """Return the owner names of the policy zone, custom domains first."""
    names: dict[str, None] = {}
    for value in spec.custom_domains:
        name = clean_domain(value)
        if name is None:
            LOG.warning("Skipping invalid custom domain %r", value)
            continue
        names.setdefault(name, None)
    if spec.wildcard_enabled:
        for value in spec.wildcard_domains:
            name = clean_domain(value.strip().removeprefix("*."))
            if name is None:
                LOG.warning("Skipping invalid wildcard domain %r", value)
                continue
            names.setdefault(f"*.{name}", None)
    listed = 0
    for text in spec.blocklists:
        for name in parse_blocklist(text, limit):
            if listed >= limit:
                break
            if name not in names:
                names[name] = None
                listed += 1
    return list(names)


def generate_rpz_zone(
    name: str,
    spec: RpzSpec,
    today: date | None = None,
    templates_dir: Path | None = None,
) -> str:
    """Render the master file of the response policy zone ``name``."""
    rtype, rdata = policy_action(spec.redirect_to)
    names = blocked_names(spec)
    LOG.info("Generating response policy zone %s with %s names", name, len(names))
    return render_template(
        "rpz_zone.j2",
        templates_dir=templates_dir,
        origin=fqdn(name),
        generated_at=generated_at(),
        ttl=spec.ttl,
        serial=generate_serial(today),
        rtype=rtype,
        rdata=rdata,
        names=names,
    )

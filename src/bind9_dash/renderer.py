"""Render zone files and configuration blocks via Jinja2 templates."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .models import AccessControl, Zone

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@lru_cache(maxsize=8)
def _environment(templates_dir: str) -> Environment:
    """Return a cached template environment for a directory."""
    return Environment(
        loader=FileSystemLoader(templates_dir),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )


def render_template(template_name: str, templates_dir: Path | None = None, **context: Any) -> str:
    """Render a template and return its text with one trailing newline."""
    env = _environment(str(templates_dir or DEFAULT_TEMPLATES_DIR))
    text = env.get_template(template_name).render(**context)
    return text.strip() + "\n"


def render_zone_block(zone: Zone) -> str:
    """Render a ``zone "name" { ... };`` statement."""
    return render_template("zone_block.j2", zone=zone)


def render_view_block(name: str, acl: AccessControl) -> str:
    """Render an empty view carrying its match-clients list."""
    return render_template("view_block.j2", name=name, match_clients=acl.match_clients())


def render_acl_block(name: str, entries: list[str]) -> str:
    """Render an ``acl "name" { ... };`` statement."""
    return render_template("acl_block.j2", name=name, entries=entries)


def render_match_clients(acl: AccessControl) -> str:
    """Render the match-clients statement of a view."""
    return render_template("match_clients.j2", match_clients=acl.match_clients())


def generated_at() -> str:
    """Return the timestamp written into generated file headers."""
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds")

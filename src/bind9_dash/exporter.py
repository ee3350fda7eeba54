"""Utilities to serialise listings into YAML or JSON."""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .models import AclDefinition, ResourceRecord, View


def record_to_dict(record: ResourceRecord) -> dict[str, Any]:
    """Convert a record into a serialisable dictionary."""
    entry: dict[str, Any] = {
        "name": record.name,
        "type": record.type,
        "ttl": record.ttl,
        "value": record.value,
    }
    if record.priority is not None:
        entry["priority"] = record.priority
    if record.type == "SRV":
        entry["weight"] = record.weight
        entry["port"] = record.port
    return entry


def view_to_dict(view: View) -> dict[str, Any]:
    """Convert a view into a serialisable dictionary."""
    return {
        "name": view.name,
        "acl": {"allow": list(view.acl.allow), "deny": list(view.acl.deny)},
        "match_clients": view.acl.match_clients(),
        "zones": list(view.zones),
    }


def acl_to_dict(acl: AclDefinition) -> dict[str, Any]:
    return {"name": acl.name, "entries": list(acl.entries)}


def to_data(value: Any) -> Any:
    """Recursively convert dataclasses, paths and containers to plain data."""
    if isinstance(value, ResourceRecord):
        return record_to_dict(value)
    if isinstance(value, View):
        return view_to_dict(value)
    if isinstance(value, AclDefinition):
        return acl_to_dict(value)
    if is_dataclass(value) and not isinstance(value, type):
        return to_data(asdict(value))
    if isinstance(value, dict):
        return {str(key): to_data(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_data(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def to_yaml(value: Any) -> str:
    """Return YAML representation of a listing."""
    return yaml.safe_dump(to_data(value), sort_keys=False)


def to_json(value: Any) -> str:
    """Return JSON representation of a listing."""
    return json.dumps(to_data(value), indent=2)


def write_output(path: Path, content: str) -> None:
    """Write content to the given path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")

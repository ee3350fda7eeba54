"""Core data models used by bind9-dash."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import NamedTuple

ZONE_TYPE_ALIASES = {"primary": "master", "secondary": "slave"}


def normalize_zone_name(name: str) -> str:
    """Return a zone name without whitespace and without trailing dots.

    The root zone is the only name that keeps its dot.
    """
    cleaned = re.sub(r"\s+", "", name or "")
    if not cleaned:
        raise InvalidInputError("Zone name is required.")
    stripped = cleaned.rstrip(".")
    return stripped or "."


def fqdn(name: str) -> str:
    """Return a fully qualified name ending in exactly one dot."""
    stripped = name.strip().rstrip(".")
    return f"{stripped}." if stripped else "."


def normalize_tokens(values: list[str] | tuple[str, ...] | None) -> list[str]:
    """Split ACL style input on newlines, commas and semicolons."""
    tokens: list[str] = []
    for value in values or []:
        if not value:
            continue
        value = value.replace("\\n", "\n")
        tokens.extend(part.strip() for part in re.split(r"[\n,;]", value) if part.strip())
    return tokens


@dataclass(frozen=True)
class ConfigBlock:
    """A named, typed region of configuration text.

    Offsets refer to the exact text the block was scanned from; ``end`` also
    covers the trailing run of whitespace and semicolons.
    """

    kind: str
    name: str
    start: int
    open_brace: int
    close_brace: int
    end: int
    body: str


@dataclass
class AccessControl:
    """Client matchers of a view."""

    allow: list[str] = field(default_factory=lambda: ["any"])
    deny: list[str] = field(default_factory=list)

    def match_clients(self) -> list[str]:
        """Return match-clients tokens, negations first."""
        tokens = [f"!{token.lstrip('!').strip()}" for token in self.deny]
        tokens.extend(self.allow)
        return tokens or ["any"]

    @classmethod
    def from_lists(cls, allow: list[str] | None, deny: list[str] | None) -> AccessControl:
        """Build an access control from raw (possibly multi-line) user input."""
        allow_tokens = normalize_tokens(allow)
        return cls(allow=allow_tokens or ["any"], deny=normalize_tokens(deny))


@dataclass
class View:
    """A view and the zones nested in it."""

    name: str
    acl: AccessControl = field(default_factory=AccessControl)
    zones: list[str] = field(default_factory=list)


@dataclass
class Zone:
    """A zone statement of the configuration document."""

    name: str
    type: str = "master"
    file: str | None = None
    view: str | None = None
    masters: list[str] = field(default_factory=list)
    allow_transfer: list[str] = field(default_factory=list)
    allow_update: list[str] = field(default_factory=list)
    allow_query: list[str] = field(default_factory=list)

    @property
    def fqdn(self) -> str:
        """Return the fully qualified zone name."""
        return fqdn(self.name)


@dataclass(frozen=True)
class AclDefinition:
    """A named address match list."""

    name: str
    entries: list[str]


@dataclass(frozen=True)
class ResourceRecord:
    """A single resource record line of a zone master file."""

    name: str
    type: str
    value: str
    ttl: int | None = None
    priority: int | None = None
    weight: int | None = None
    port: int | None = None

    def key(self) -> tuple[str, str]:
        """Return the (name, type) identity used for updates and deletes."""
        return (self.name, self.type.upper())


class RecordKey(NamedTuple):
    """Identifies the record an update or delete targets."""

    name: str
    type: str
    value: str | None = None


class Bind9DashError(Exception):
    """Base exception for bind9-dash."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage


class NotFoundError(Bind9DashError):
    """Raised when a block, zone, view or record does not exist."""


class MalformedDocumentError(Bind9DashError):
    """Raised when braces do not balance or an expected field is missing."""


class ValidationRejectedError(Bind9DashError):
    """Raised when the external validator rejects a candidate file."""

    def __init__(self, message: str, diagnostics: str = "", stage: str | None = None):
        super().__init__(message, stage=stage)
        self.diagnostics = diagnostics


class ApplyFailedError(Bind9DashError):
    """Raised when a reload rejects an already committed file."""

    def __init__(
        self,
        message: str,
        rolled_back: bool,
        backup_path: str | None = None,
        stage: str | None = None,
    ):
        super().__init__(message, stage=stage)
        self.rolled_back = rolled_back
        self.backup_path = backup_path


class StorageError(Bind9DashError):
    """Raised on disk or permission failures."""


class ConflictError(Bind9DashError):
    """Raised when an object already exists or is still in use."""


class InvalidInputError(Bind9DashError):
    """Raised when caller input cannot be used."""


class SettingsError(Bind9DashError):
    """Raised when the settings file cannot be read or validated."""

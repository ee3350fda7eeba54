"""High-level orchestration for bind9-dash."""

from __future__ import annotations

import ipaddress
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, Field, field_validator

from . import document
from .config import AppConfig
from .diffing import DocumentDiff, diff_documents
from .models import (
    ZONE_TYPE_ALIASES,
    AccessControl,
    AclDefinition,
    ApplyFailedError,
    Bind9DashError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    RecordKey,
    ResourceRecord,
    StorageError,
    View,
    Zone,
    normalize_tokens,
    normalize_zone_name,
)
from .pipeline import (
    CheckResult,
    CommandReloader,
    CommitPipeline,
    CommitResult,
    CommitStage,
    DnsPythonZoneValidator,
    NamedCheckconfValidator,
    NamedCheckzoneValidator,
    Reloader,
    Validator,
    atomic_write,
    backup_copy,
    locked,
    restore_from,
)
from .rpz import RpzSpec, generate_rpz_zone
from .scanner import iter_blocks
from .settings import AccessControlSpec, DashSettings, SettingsStore
from .zonefile import (
    EditPolicy,
    ZoneFileOptions,
    ZoneRecordStore,
    extract_serial,
    generate_zone_file,
    parse_records,
    placeholder_slave_zone,
)

LOG = logging.getLogger("bind9_dash")

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
ZONE_NAME_PATTERN = re.compile(r"^(?:\.|[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*)$")
GLOBAL_VIEW = "global"


class ZoneCreateSpec(BaseModel):
    """Schema for a zone creation request."""

    name: str
    type: str = "master"
    view: str | None = None
    acl: AccessControlSpec | None = None
    file: str | None = None
    ttl: int | None = Field(default=None, ge=0)
    nameserver: str | None = None
    email: str | None = None
    address: str = "127.0.0.1"
    ns_address: str | None = None
    domain: str = "example.com."
    masters: list[str] = Field(default_factory=list)
    allow_transfer: list[str] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def _canonical_type(cls, value: str) -> str:
        """Map primary/secondary onto master/slave."""
        lowered = value.strip().lower()
        lowered = ZONE_TYPE_ALIASES.get(lowered, lowered)
        if lowered not in {"master", "slave"}:
            raise ValueError("type must be 'master' or 'slave'")
        return lowered

    @field_validator("view")
    @classmethod
    def _empty_view_is_top_level(cls, value: str | None) -> str | None:
        return value.strip() or None if value is not None else None

    @field_validator("masters", "allow_transfer", mode="before")
    @classmethod
    def _split_entries(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_tokens([value])
        return value


@dataclass
class ZoneInfo:
    """A zone plus what is known about its master file."""

    zone: Zone
    path: Path | None
    records: int | None = None
    serial: int | None = None
    modified: datetime | None = None


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _check_name(kind: str, name: str) -> str:
    """Return ``name`` if it is a valid view or ACL name."""
    if not name or not NAME_PATTERN.match(name):
        raise InvalidInputError(f"{kind} name can only contain letters, numbers, hyphens, and underscores.")
    return name


def _check_zone_name(name: str) -> str:
    """Return the normalised zone name or raise InvalidInputError."""
    normalized = normalize_zone_name(name)
    if not ZONE_NAME_PATTERN.match(normalized):
        raise InvalidInputError(f"Invalid zone name: {name!r}")
    return normalized


def _check_addresses(entries: list[str]) -> list[str]:
    """Return ``entries`` if each one starts with an IP address."""
    if not entries:
        raise InvalidInputError("At least one master server address is required.")
    for entry in entries:
        try:
            ipaddress.ip_address(entry.split()[0])
        except ValueError as exc:
            raise InvalidInputError(f"Invalid IP address: {entry}") from exc
    return entries


def _view_or_top_level(view: str | None) -> str | None:
    return view.strip() or None if view else None


def _zone_stats(info: ZoneInfo) -> ZoneInfo:
    """Fill record count, serial and mtime from the zone file."""
    if info.path is None or not info.path.exists():
        return info
    try:
        text = info.path.read_text(encoding="utf-8")
        stat = info.path.stat()
    except OSError as exc:
        LOG.warning("Could not read %s: %s", info.path, exc)
        return info
    info.records = len(parse_records(text))
    info.serial = extract_serial(text)
    info.modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    return info


class ZoneOperations:
    """Coordinates document edits, zone files, commits and settings."""

    def __init__(
        self,
        config: AppConfig,
        settings_store: SettingsStore | None = None,
        validator: Validator | None = None,
        reloader: Reloader | None = None,
        zone_validator_factory: Callable[[str], Validator | None] | None = None,
    ):
        """Store configuration and the collaborators used for every commit."""
        self.config = config
        self.settings_store = settings_store or SettingsStore(config.settings_path)
        self.validator = validator or NamedCheckconfValidator(
            config.named_checkconf_bin,
            timeout=config.command_timeout,
        )
        self.reloader = reloader or CommandReloader(
            [list(command) for command in config.reload_commands],
            timeout=config.command_timeout,
        )
        self.zone_validator_factory = zone_validator_factory or self._default_zone_validator

    # -- helpers ---------------------------------------------------------

    def _default_zone_validator(self, zone: str) -> Validator | None:
        """Return the zone file validator selected by configuration."""
        strategy = self.config.zone_check_strategy
        if strategy == "checkzone":
            return NamedCheckzoneValidator(zone, self.config.named_checkzone_bin, self.config.command_timeout)
        if strategy == "dnspython":
            return DnsPythonZoneValidator(zone)
        return None

    @property
    def conf_path(self) -> Path:
        return self.config.named_conf_path

    def _read_document(self) -> str:
        """Return the live configuration text; a missing file reads as empty."""
        try:
            return self.conf_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            LOG.warning("%s does not exist yet; starting from an empty document.", self.conf_path)
            return ""
        except OSError as exc:
            raise StorageError(f"Failed to read {self.conf_path}: {exc}") from exc

    def _commit_document(self, candidate: str, settings: DashSettings) -> CommitResult:
        """Validate, back up, replace and (if enabled) reload the document."""
        pipeline = CommitPipeline(self.validator, self.reloader)
        return pipeline.commit(self.conf_path, candidate, apply=settings.zones.auto_reload, backup=True)

    def _sync_settings(self, text: str) -> None:
        """Write view membership back after a successful commit."""
        try:
            self.settings_store.sync_views(document.list_views(text))
        except Bind9DashError as exc:
            LOG.warning("Could not update view settings: %s", exc)

    def _zone_path(self, zone: Zone) -> Path | None:
        """Resolve a zone's file against the server directory."""
        if not zone.file:
            return None
        path = Path(zone.file)
        return path if path.is_absolute() else self.config.bind_directory / path

    def _require_zone(self, text: str, name: str) -> Zone:
        zone = document.find_zone(text, name)
        if zone is None:
            raise NotFoundError(f'Zone "{name}" not found.')
        return zone

    def _view_acl(self, settings: DashSettings, view: str | None, acl: AccessControl | None) -> AccessControl:
        """Return the supplied ACL, else the remembered one for ``view``."""
        if acl is not None:
            return acl
        stored = settings.find_view(view) if view else None
        return stored.acl.to_access_control() if stored else AccessControl()

    def _edit_policy(self, settings: DashSettings) -> EditPolicy:
        zones = settings.zones
        return EditPolicy(backup=zones.backup_enabled, validate=zones.validate_before_reload, apply=zones.auto_reload)

    # -- root hints adoption ----------------------------------------------

    def adopt_zones_from_file(self, text: str, source: str, view: str = GLOBAL_VIEW) -> tuple[str, str, int]:
        """Move the zones defined in ``source`` into ``view`` of ``text``.

        Returns the new document text, the cleaned source text and the number
        of zones moved. Both texts are built in memory only.
        """
        moved = 0
        for block in list(iter_blocks(source, "zone")):
            zone = document.parse_zone(block)
            text = document.insert_zone(document.remove_zone(text, zone.name), zone, view)
            moved += 1
        cleaned = source
        for block in list(iter_blocks(source, "zone")):
            cleaned = document.remove_zone(cleaned, block.name)
        return text, cleaned, moved

    def _first_view_guard(self, text: str, candidate: str) -> tuple[str, Callable[[], None] | None]:
        """Adopt root hint zones when ``candidate`` introduces the first view.

        Returns the candidate to commit and an undo callback for the root
        hints file, or None when nothing was adopted.
        """
        hints = self.config.root_hints_path
        if hints is None or not hints.exists():
            return candidate, None
        if document.list_views(text) or not document.list_views(candidate):
            return candidate, None
        source = hints.read_text(encoding="utf-8")
        candidate, cleaned, moved = self.adopt_zones_from_file(candidate, source)
        if not moved:
            return candidate, None
        LOG.info("Moving %s zone(s) from %s into view %s", moved, hints, GLOBAL_VIEW)
        result = CommitPipeline(None, None).commit(hints, cleaned, backup=True)

        def undo() -> None:
            if result.backup_path is not None:
                restore_from(result.backup_path, hints)

        return candidate, undo

    def _commit_with_adoption(self, text: str, candidate: str, settings: DashSettings) -> CommitResult:
        """Commit ``candidate``, adopting root hint zones if it adds the first view."""
        candidate, undo = self._first_view_guard(text, candidate)
        try:
            result = self._commit_document(candidate, settings)
        except Bind9DashError:
            if undo is not None:
                undo()
            raise
        self._sync_settings(candidate)
        return result

    # -- zones -----------------------------------------------------------

    def list_zones(self, with_stats: bool = True) -> list[ZoneInfo]:
        """Return every configured zone, optionally with file statistics."""
        infos = [ZoneInfo(zone=zone, path=self._zone_path(zone)) for zone in document.list_zones(self._read_document())]
        if not with_stats or not infos:
            return infos
        with ThreadPoolExecutor(max_workers=min(8, len(infos))) as executor:
            return list(executor.map(_zone_stats, infos))

    def get_zone(self, name: str) -> ZoneInfo:
        """Return one zone with its file statistics."""
        zone = self._require_zone(self._read_document(), name)
        return _zone_stats(ZoneInfo(zone=zone, path=self._zone_path(zone)))

    def create_zone(self, spec: ZoneCreateSpec) -> ZoneInfo:
        """Create the zone file and add the zone to the document."""
        name = _check_zone_name(spec.name)
        view = _view_or_top_level(spec.view)
        if view is not None:
            _check_name("View", view)
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            if document.locate_zone(text, name) is not None:
                raise ConflictError(f"Zone {name} already exists.")

            created = False
            if spec.type == "slave":
                masters = _check_addresses(spec.masters)
                path = self.config.slave_zones_dir / f"{name}.db"
                zone = Zone(name=name, type="slave", file=str(path), masters=masters, allow_transfer=spec.allow_transfer)
                if not path.exists():
                    atomic_write(path, placeholder_slave_zone(name, templates_dir=self.config.templates_dir))
                    created = True
            else:
                path = Path(spec.file) if spec.file else self.config.zones_dir / f"db.{name}"
                if not path.is_absolute():
                    path = self.config.zones_dir / path
                if path.exists():
                    raise ConflictError(f"Zone file already exists: {path}")
                options = ZoneFileOptions(
                    ttl=spec.ttl if spec.ttl is not None else self.config.default_zone_ttl,
                    nameserver=spec.nameserver,
                    email=spec.email,
                    address=spec.address,
                    ns_address=spec.ns_address,
                    domain=spec.domain,
                    auto_generate_ptr=settings.zones.auto_generate_ptr,
                )
                content = generate_zone_file(name, options, templates_dir=self.config.templates_dir)
                store = ZoneRecordStore(name, path, validator=self.zone_validator_factory(name))
                store.create_zone_file(content, self._edit_policy(settings))
                created = True
                zone = Zone(
                    name=name,
                    type="master",
                    file=str(path),
                    allow_transfer=spec.allow_transfer,
                    allow_update=["none"],
                )
            LOG.info("Created zone file %s", path)

            acl = self._view_acl(settings, view, spec.acl.to_access_control() if spec.acl else None)
            candidate = document.insert_zone(text, zone, view, acl)
            try:
                self._commit_with_adoption(text, candidate, settings)
            except Bind9DashError:
                if created:
                    LOG.info("Removing %s after failed commit", path)
                    path.unlink(missing_ok=True)
                raise
        LOG.info("Zone %s added to %s", name, view or "top level")
        zone.view = view
        return _zone_stats(ZoneInfo(zone=zone, path=path))

    def delete_zone(self, name: str) -> CommitResult:
        """Remove the zone from the document and delete its file."""
        name = normalize_zone_name(name)
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            zone = self._require_zone(text, name)
            candidate = document.remove_zone(text, name)
            path = self._zone_path(zone)
            backup: Path | None = None
            if path is not None and path.exists():
                with locked(path):
                    backup = backup_copy(path)
                    path.unlink()
                LOG.info("Deleted zone file %s", path)
            elif path is not None:
                LOG.info("Zone file does not exist (may be a slave zone not yet transferred): %s", path)
            try:
                result = self._commit_document(candidate, settings)
            except Bind9DashError:
                if backup is not None and path is not None:
                    LOG.info("Restoring %s from %s", path, backup)
                    restore_from(backup, path)
                raise
            self._sync_settings(candidate)
        LOG.info("Zone %s deleted", name)
        return result

    def _reassign_candidate(
        self,
        text: str,
        name: str,
        view: str | None,
        acl: AccessControl | None,
        settings: DashSettings,
    ) -> str | None:
        """Return the moved document, or None when the zone is already there."""
        if normalize_zone_name(name) in self.config.protected_zones:
            raise ConflictError(f"Cannot reassign system zone: {name}")
        zone = self._require_zone(text, name)
        if (zone.view or "") == (view or ""):
            return None
        if view is not None:
            _check_name("View", view)
        target_acl = self._view_acl(settings, view, acl)
        return document.move_zone_to_container(text, name, zone.file, view, target_acl)

    def plan_reassign(self, name: str, view: str | None, acl: AccessControl | None = None) -> DocumentDiff:
        """Show what reassigning ``name`` would change without writing anything."""
        view = _view_or_top_level(view)
        text = self._read_document()
        candidate = self._reassign_candidate(text, name, view, acl, self.settings_store.load())
        return diff_documents(text, text if candidate is None else candidate, self.conf_path.name)

    def reassign_zone(self, name: str, view: str | None, acl: AccessControl | None = None) -> CommitResult:
        """Move a zone into ``view`` (None for the top level)."""
        view = _view_or_top_level(view)
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            candidate = self._reassign_candidate(text, name, view, acl, settings)
            if candidate is None:
                LOG.info("Zone %s already assigned to %s", name, view or "top level")
                return CommitResult(target=self.conf_path, stage=CommitStage.COMMITTED, changed=False)
            result = self._commit_with_adoption(text, candidate, settings)
        LOG.info("Zone %s moved to %s", name, view or GLOBAL_VIEW)
        return result

    def convert_to_slave(
        self,
        name: str,
        masters: list[str],
        allow_transfer: list[str] | None = None,
    ) -> CommitResult:
        """Turn a zone into a slave of ``masters`` with a placeholder file."""
        masters = _check_addresses(normalize_tokens(masters))
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            zone = self._require_zone(text, name)
            path = self.config.slave_zones_dir / f"{normalize_zone_name(zone.name)}.db"
            created = False
            if not path.exists():
                atomic_write(path, placeholder_slave_zone(zone.name, templates_dir=self.config.templates_dir))
                created = True
                LOG.info("Created placeholder slave zone file %s", path)
            converted = replace(
                zone,
                type="slave",
                file=str(path),
                masters=masters,
                allow_transfer=normalize_tokens(allow_transfer) or ["none"],
                allow_update=[],
            )
            candidate = document.rewrite_zone(text, converted)
            try:
                result = self._commit_document(candidate, settings)
            except Bind9DashError:
                if created:
                    path.unlink(missing_ok=True)
                raise
            self._sync_settings(candidate)
        LOG.info("Zone %s converted to slave (masters: %s)", name, ", ".join(masters))
        return result

    def convert_to_master(self, name: str, file: str | None = None) -> CommitResult:
        """Turn a zone into a master, generating its file when missing."""
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            zone = self._require_zone(text, name)
            zone_name = normalize_zone_name(zone.name)
            path = Path(file) if file else self.config.zones_dir / f"db.{zone_name}"
            if not path.is_absolute():
                path = self.config.zones_dir / path
            created = False
            if not path.exists():
                options = ZoneFileOptions(
                    ttl=self.config.default_zone_ttl,
                    auto_generate_ptr=settings.zones.auto_generate_ptr,
                )
                content = generate_zone_file(zone_name, options, templates_dir=self.config.templates_dir)
                store = ZoneRecordStore(zone_name, path, validator=self.zone_validator_factory(zone_name))
                store.create_zone_file(content, self._edit_policy(settings))
                created = True
                LOG.info("Generated zone file %s", path)
            converted = replace(zone, type="master", file=str(path), masters=[], allow_update=["none"])
            candidate = document.rewrite_zone(text, converted)
            try:
                result = self._commit_document(candidate, settings)
            except Bind9DashError:
                if created:
                    path.unlink(missing_ok=True)
                raise
            self._sync_settings(candidate)
        LOG.info("Zone %s converted to master", name)
        return result

    def _rewrite(self, name: str, change: Callable[[Zone], Zone]) -> CommitResult:
        """Commit an in-place rewrite of one zone block."""
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            zone = change(self._require_zone(text, name))
            candidate = document.rewrite_zone(text, zone)
            result = self._commit_document(candidate, settings)
            self._sync_settings(candidate)
        return result

    def update_slave_masters(self, name: str, masters: list[str]) -> CommitResult:
        """Point a slave zone at new master servers."""
        masters = _check_addresses(normalize_tokens(masters))

        def change(zone: Zone) -> Zone:
            if zone.type != "slave":
                raise InvalidInputError(f'Zone "{name}" is not a slave zone.')
            return replace(zone, masters=masters)

        LOG.info("Updating masters of %s to %s", name, ", ".join(masters))
        return self._rewrite(name, change)

    def set_allow_transfer(self, name: str, entries: list[str]) -> CommitResult:
        """Replace a zone's allow-transfer list."""
        tokens = normalize_tokens(entries)
        if not tokens:
            raise InvalidInputError("allow-transfer requires at least one entry.")
        LOG.info("Setting allow-transfer of %s to %s", name, ", ".join(tokens))
        return self._rewrite(name, lambda zone: replace(zone, allow_transfer=tokens))

    # -- views -----------------------------------------------------------

    def list_views(self) -> list[View]:
        return document.list_views(self._read_document())

    def create_view(self, name: str, acl: AccessControl | None = None) -> CommitResult:
        """Append an empty view."""
        _check_name("View", name)
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            candidate = document.add_view(text, name, acl or AccessControl())
            result = self._commit_with_adoption(text, candidate, settings)
        LOG.info("View %s created", name)
        return result

    def update_view_acl(self, name: str, acl: AccessControl) -> CommitResult:
        """Replace a view's match-clients list."""
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            candidate = document.set_view_acl(text, name, acl)
            result = self._commit_document(candidate, settings)
            self._sync_settings(candidate)
        LOG.info("View %s ACL updated", name)
        return result

    def delete_view(self, name: str) -> CommitResult:
        """Remove an empty view."""
        settings = self.settings_store.load()
        with locked(self.conf_path):
            text = self._read_document()
            for view in document.list_views(text):
                if view.name == name and view.zones:
                    raise ConflictError(
                        f'Cannot delete view "{name}": {len(view.zones)} zone(s) still assigned. '
                        "Reassign or delete them first."
                    )
            candidate = document.remove_view(text, name)
            result = self._commit_document(candidate, settings)
            self._sync_settings(candidate)
        LOG.info("View %s deleted", name)
        return result

    # -- acls ------------------------------------------------------------

    def list_acls(self) -> list[AclDefinition]:
        return document.list_acls(self._read_document())

    def create_acl(self, name: str, entries: list[str]) -> CommitResult:
        """Define a named ACL."""
        _check_name("ACL", name)
        tokens = normalize_tokens(entries)
        if not tokens:
            raise InvalidInputError("An ACL needs at least one entry.")
        settings = self.settings_store.load()
        with locked(self.conf_path):
            candidate = document.add_acl(self._read_document(), name, tokens)
            result = self._commit_document(candidate, settings)
        LOG.info("ACL %s created with %s entries", name, len(tokens))
        return result

    def delete_acl(self, name: str) -> CommitResult:
        """Remove a named ACL."""
        settings = self.settings_store.load()
        with locked(self.conf_path):
            candidate = document.remove_acl(self._read_document(), name)
            result = self._commit_document(candidate, settings)
        LOG.info("ACL %s deleted", name)
        return result

    # -- records ---------------------------------------------------------

    def _record_store(self, name: str) -> ZoneRecordStore:
        """Return the record store of a master zone."""
        zone = self._require_zone(self._read_document(), name)
        if zone.type == "slave":
            raise InvalidInputError(f'Zone "{name}" is a slave zone; its records come from the master.')
        path = self._zone_path(zone)
        if path is None:
            raise NotFoundError(f'Zone "{name}" has no file.')
        return ZoneRecordStore(zone.name, path, validator=self.zone_validator_factory(zone.name), reloader=self.reloader)

    def list_records(self, name: str) -> list[ResourceRecord]:
        """Return the zone's records with their effective TTLs."""
        return self._record_store(name).read_records(effective_ttl=True)

    def add_record(self, name: str, record: ResourceRecord) -> CommitResult:
        return self._record_store(name).add_record(record, self._edit_policy(self.settings_store.load()))

    def update_record(self, name: str, key: RecordKey, record: ResourceRecord) -> CommitResult:
        return self._record_store(name).update_record(key, record, self._edit_policy(self.settings_store.load()))

    def delete_record(self, name: str, key: RecordKey) -> CommitResult:
        return self._record_store(name).delete_record(key, self._edit_policy(self.settings_store.load()))

    # -- response policy zone --------------------------------------------

    @property
    def rpz_path(self) -> Path:
        return self.config.zones_dir / f"{self.config.rpz_zone}.db"

    def setup_rpz(self, spec: RpzSpec) -> CommitResult:
        """Write the response policy zone file and declare the zone in every view.

        When the document already declares the zone in every view only the
        zone file is committed, and it carries the reload itself.
        """
        name = self.config.rpz_zone
        path = self.rpz_path
        settings = self.settings_store.load()
        content = generate_rpz_zone(name, spec, templates_dir=self.config.templates_dir)
        zone = Zone(name=name, type="master", file=str(path), allow_query=["any"])
        with locked(self.conf_path):
            text = self._read_document()
            candidate = document.insert_zone_everywhere(text, zone)
            declared = candidate == text
            with locked(path):
                previous = path.read_text(encoding="utf-8") if path.exists() else None
                validator = self.zone_validator_factory(name) if settings.zones.validate_before_reload else None
                file_result = CommitPipeline(validator, self.reloader).commit(
                    path,
                    content,
                    apply=declared and settings.zones.auto_reload,
                    backup=settings.zones.backup_enabled,
                )
            if declared:
                LOG.info("Response policy zone %s refreshed", name)
                return file_result
            try:
                result = self._commit_document(candidate, settings)
            except Bind9DashError:
                LOG.info("Restoring %s after failed commit", path)
                if previous is None:
                    path.unlink(missing_ok=True)
                else:
                    atomic_write(path, previous)
                raise
            self._sync_settings(candidate)
        views = [view.name for view in document.list_views(candidate)]
        LOG.info("Response policy zone %s declared in %s", name, ", ".join(views) or "top level")
        return result

    def remove_rpz(self) -> CommitResult:
        """Remove the response policy zone from every view and delete its file."""
        name = self.config.rpz_zone
        if document.locate_zone(self._read_document(), name) is not None:
            return self.delete_zone(name)
        path = self.rpz_path
        if path.exists():
            with locked(path):
                backup_copy(path)
                path.unlink()
            LOG.info("Deleted zone file %s", path)
        return CommitResult(target=self.conf_path, stage=CommitStage.COMMITTED, changed=False)

    # -- server ----------------------------------------------------------

    def reload(self) -> CheckResult:
        """Ask the server to reload its configuration."""
        result = self.reloader.apply()
        if not result.ok:
            raise ApplyFailedError(f"Reload failed: {result.output}", rolled_back=False)
        LOG.info("Server reloaded")
        return result

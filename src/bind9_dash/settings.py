"""Load and persist dashboard settings as YAML."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import AccessControl, SettingsError, View, normalize_tokens
from .pipeline import atomic_write, locked

LOG = logging.getLogger("bind9_dash")


class AccessControlSpec(BaseModel):
    """Schema for a view's client matchers."""

    allow: list[str] = Field(default_factory=lambda: ["any"])
    deny: list[str] = Field(default_factory=list)

    @field_validator("allow", "deny", mode="before")
    @classmethod
    def _split_entries(cls, value: object) -> object:
        """Accept a single string or a list of (possibly multi-line) strings."""
        if value is None:
            return []
        if isinstance(value, str):
            return normalize_tokens([value])
        if isinstance(value, list):
            return normalize_tokens([str(item) for item in value])
        return value

    def to_access_control(self) -> AccessControl:
        """Return the model used by the document layer."""
        return AccessControl(allow=list(self.allow) or ["any"], deny=list(self.deny))

    @classmethod
    def from_access_control(cls, acl: AccessControl) -> AccessControlSpec:
        return cls(allow=list(acl.allow), deny=list(acl.deny))


class ViewSettings(BaseModel):
    """Schema for a remembered view."""

    name: str
    acl: AccessControlSpec = Field(default_factory=AccessControlSpec)
    zones: list[str] = Field(default_factory=list)


class ZoneSettings(BaseModel):
    """Flags controlling how zone edits are committed."""

    auto_reload: bool = True
    backup_enabled: bool = True
    validate_before_reload: bool = True
    auto_generate_ptr: bool = True


class DashSettings(BaseModel):
    """Schema for the settings document."""

    zones: ZoneSettings = Field(default_factory=ZoneSettings)
    views: list[ViewSettings] = Field(default_factory=list)

    def find_view(self, name: str) -> ViewSettings | None:
        """Return the stored view called ``name``."""
        for view in self.views:
            if view.name == name:
                return view
        return None


class SettingsStore:
    """Reads and writes the settings YAML file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> DashSettings:
        """Return the stored settings, or defaults when the file is missing."""
        if not self.path.exists():
            LOG.debug("Settings file %s not found; using defaults.", self.path)
            return DashSettings()
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise SettingsError(f"Failed to read settings {self.path}: {exc}") from exc
        try:
            return DashSettings(**data)
        except (TypeError, ValidationError) as exc:
            raise SettingsError(f"Settings validation error: {exc}") from exc

    def save(self, settings: DashSettings) -> None:
        """Atomically write ``settings``."""
        content = yaml.safe_dump(settings.model_dump(), sort_keys=False)
        try:
            with locked(self.path):
                atomic_write(self.path, content)
        except OSError as exc:
            raise SettingsError(f"Failed to write settings {self.path}: {exc}") from exc

    def sync_views(self, views: list[View]) -> DashSettings:
        """Rewrite view membership and ACLs from a committed document."""
        settings = self.load()
        settings.views = [
            ViewSettings(
                name=view.name,
                acl=AccessControlSpec.from_access_control(view.acl),
                zones=list(view.zones),
            )
            for view in views
        ]
        self.save(settings)
        return settings

"""Environment-driven configuration loader."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .models import normalize_zone_name

ZONE_CHECK_STRATEGIES = {"checkzone", "dnspython", "none"}


@dataclass(frozen=True)
class AppConfig:
    """Application-wide configuration values."""

    named_conf_path: Path
    bind_directory: Path
    zones_dir: Path
    slave_zones_dir: Path
    settings_path: Path
    templates_dir: Path | None
    named_checkconf_bin: str
    named_checkzone_bin: str
    zone_check_strategy: str
    reload_commands: tuple[tuple[str, ...], ...]
    command_timeout: float
    default_zone_ttl: int
    protected_zones: frozenset[str]
    root_hints_path: Path | None
    log_level: str
    rpz_zone: str = "adblock"


def _parse_command(value: str | None) -> tuple[str, ...]:
    """Split a command line from the environment into argv."""
    return tuple(shlex.split(value)) if value else ()


def _parse_list(value: str | None) -> list[str]:
    """Return the non-empty comma separated items of ``value``."""
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def load_config() -> AppConfig:
    """Load configuration values from the environment (and .env)."""
    load_dotenv()
    bind_directory = Path(os.getenv("BIND_DIRECTORY", "/etc/bind"))
    named_conf_path = Path(os.getenv("NAMED_CONF_PATH", str(bind_directory / "named.conf.local")))
    zones_dir = Path(os.getenv("ZONES_DIR", str(bind_directory / "zones")))
    slave_zones_dir = Path(os.getenv("SLAVE_ZONES_DIR", str(zones_dir / "slave")))
    templates_dir = os.getenv("TEMPLATES_DIR")
    root_hints = os.getenv("ROOT_HINTS_PATH")

    zone_check_strategy = os.getenv("ZONE_CHECK_STRATEGY", "checkzone").lower()
    if zone_check_strategy not in ZONE_CHECK_STRATEGIES:
        raise ValueError("ZONE_CHECK_STRATEGY must be one of 'checkzone', 'dnspython' or 'none'.")

    reload_commands = tuple(
        command
        for command in (
            _parse_command(os.getenv("RELOAD_COMMAND", "rndc reload")),
            _parse_command(os.getenv("RELOAD_FALLBACK_COMMAND", "systemctl reload named")),
        )
        if command
    )
    if not reload_commands:
        raise ValueError("At least one of RELOAD_COMMAND or RELOAD_FALLBACK_COMMAND is required.")

    command_timeout = float(os.getenv("COMMAND_TIMEOUT", "30"))
    if command_timeout <= 0:
        raise ValueError("COMMAND_TIMEOUT must be positive.")
    default_zone_ttl = int(os.getenv("DEFAULT_ZONE_TTL", "3600"))
    if default_zone_ttl < 0:
        raise ValueError("DEFAULT_ZONE_TTL must not be negative.")

    protected = {name.rstrip(".") or "." for name in _parse_list(os.getenv("PROTECTED_ZONES", "."))}

    return AppConfig(
        named_conf_path=named_conf_path,
        bind_directory=bind_directory,
        zones_dir=zones_dir,
        slave_zones_dir=slave_zones_dir,
        settings_path=Path(os.getenv("SETTINGS_PATH", str(bind_directory / "bind9-dash.yaml"))),
        templates_dir=Path(templates_dir).resolve() if templates_dir else None,
        named_checkconf_bin=os.getenv("NAMED_CHECKCONF_BIN", "named-checkconf"),
        named_checkzone_bin=os.getenv("NAMED_CHECKZONE_BIN", "named-checkzone"),
        zone_check_strategy=zone_check_strategy,
        reload_commands=reload_commands,
        command_timeout=command_timeout,
        default_zone_ttl=default_zone_ttl,
        protected_zones=frozenset(protected),
        root_hints_path=Path(root_hints) if root_hints else None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        rpz_zone=normalize_zone_name(os.getenv("RPZ_ZONE", "adblock")),
    )

"""Validated, atomic commits of configuration and zone files."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Protocol

from .models import ApplyFailedError, StorageError, ValidationRejectedError

LOG = logging.getLogger("bind9_dash")

_LOCKS: weakref.WeakValueDictionary[Path, threading.RLock] = weakref.WeakValueDictionary()
_LOCKS_GUARD = threading.Lock()


class CommitStage(str, Enum):
    """Stages a commit moves through."""

    DRAFT = "draft"
    TEMP_WRITTEN = "temp_written"
    VALIDATED = "validated"
    BACKED_UP = "backed_up"
    COMMITTED = "committed"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of an external check or reload."""

    ok: bool
    output: str = ""


class Validator(Protocol):
    """Accepts or rejects a candidate file."""

    def validate(self, path: Path) -> CheckResult:
        """Check the file at ``path``."""


class Reloader(Protocol):
    """Makes the running server pick up committed files."""

    def apply(self) -> CheckResult:
        """Reload the server."""


@dataclass
class CommitResult:
    """What a commit did."""

    target: Path
    stage: CommitStage
    changed: bool = True
    backup_path: Path | None = None
    validator_output: str = ""
    apply_output: str = ""


def _run_command(cmd: list[str], timeout: float) -> CheckResult:
    """Run an external command and fold its exit status into a CheckResult."""
    LOG.info("Running %s", " ".join(cmd))
    try:
        completed = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
    except FileNotFoundError:
        return CheckResult(ok=False, output=f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        return CheckResult(ok=False, output=f"{' '.join(cmd)} timed out after {timeout:g}s")
    output = "\n".join(part.strip() for part in (completed.stdout, completed.stderr) if part and part.strip())
    return CheckResult(ok=completed.returncode == 0, output=output)


class NamedCheckconfValidator:
    """Validate configuration documents with ``named-checkconf``."""

    def __init__(self, binary: str = "named-checkconf", timeout: float = 30.0, check_zones: bool = True):
        self.binary = binary
        self.timeout = timeout
        self.check_zones = check_zones

    def validate(self, path: Path) -> CheckResult:
        cmd = [self.binary, *(["-z"] if self.check_zones else []), str(path)]
        return _run_command(cmd, self.timeout)


class NamedCheckzoneValidator:
    """Validate a zone master file with ``named-checkzone``."""

    def __init__(self, zone: str, binary: str = "named-checkzone", timeout: float = 30.0):
        self.zone = zone
        self.binary = binary
        self.timeout = timeout

    def validate(self, path: Path) -> CheckResult:
        return _run_command([self.binary, self.zone, str(path)], self.timeout)


class DnsPythonZoneValidator:
    """Validate a zone master file in-process with dnspython."""

    def __init__(self, zone: str):
        self.zone = zone

    def validate(self, path: Path) -> CheckResult:
        import dns.exception
        import dns.zone

        origin = self.zone if self.zone.endswith(".") else f"{self.zone}."
        try:
            zone = dns.zone.from_file(str(path), origin=origin, relativize=False, check_origin=True)
        except (dns.exception.DNSException, KeyError, ValueError) as exc:
            return CheckResult(ok=False, output=f"{origin}: {exc}")
        return CheckResult(ok=True, output=f"zone {origin} loaded ({len(zone.nodes)} names)")


class CommandReloader:
    """Reload by running each command in turn until one succeeds."""

    def __init__(self, commands: list[list[str]], timeout: float = 30.0):
        self.commands = [cmd for cmd in commands if cmd]
        self.timeout = timeout

    def apply(self) -> CheckResult:
        failures: list[str] = []
        for cmd in self.commands:
            result = _run_command(cmd, self.timeout)
            if result.ok:
                return result
            failures.append(result.output or f"{' '.join(cmd)} failed")
            LOG.warning("Reload command %s failed: %s", " ".join(cmd), result.output)
        return CheckResult(ok=False, output="; ".join(failures) or "no reload command configured")


@contextmanager
def locked(path: Path) -> Iterator[None]:
    """Serialise read-modify-write sequences on one file within this process.

    A path's lock lives only while some caller holds or waits on it.
    """
    key = Path(path).resolve()
    with _LOCKS_GUARD:
        lock = _LOCKS.setdefault(key, threading.RLock())
    with lock:
        yield


def _stamped(path: Path, label: str) -> Path:
    """Return ``<path>.<label>.<timestamp>`` that does not exist yet."""
    stamp = time.time_ns() // 1000
    candidate = path.with_name(f"{path.name}.{label}.{stamp}")
    while candidate.exists():
        stamp += 1
        candidate = path.with_name(f"{path.name}.{label}.{stamp}")
    return candidate


def atomic_write(path: Path, text: str) -> None:
    """Write ``text`` next to ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def backup_copy(path: Path) -> Path:
    """Copy ``path`` to a timestamped ``.backup`` sibling and return it."""
    backup = _stamped(path, "backup")
    shutil.copy2(path, backup)
    LOG.info("Backup created: %s", backup)
    return backup


def restore_from(backup: Path, target: Path) -> None:
    """Atomically put the backup content back in place of ``target``."""
    tmp = _stamped(target, "restore")
    shutil.copy2(backup, tmp)
    os.replace(tmp, target)


class CommitPipeline:
    """Write, validate, back up, replace and optionally reload one file.

    ``validator`` None skips validation, which is how the lighter zone file
    policy is expressed.
    """

    def __init__(self, validator: Validator | None = None, reloader: Reloader | None = None):
        self.validator = validator
        self.reloader = reloader

    def commit(self, target: Path, candidate: str, apply: bool = False, backup: bool = True) -> CommitResult:
        """Run the commit sequence for ``candidate`` against ``target``."""
        target = Path(target)
        with locked(target):
            existed = target.exists()
            previous = target.read_text(encoding="utf-8") if existed else None
            if previous == candidate:
                LOG.info("No changes for %s; nothing to commit.", target)
                return CommitResult(target=target, stage=CommitStage.COMMITTED, changed=False)

            tmp = _stamped(target, "tmp")
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(candidate, encoding="utf-8")
            except OSError as exc:
                tmp.unlink(missing_ok=True)
                raise StorageError(f"Failed to write {tmp}: {exc}", stage=CommitStage.DRAFT.value) from exc
            result = CommitResult(target=target, stage=CommitStage.TEMP_WRITTEN)

            if self.validator is not None:
                try:
                    check = self.validator.validate(tmp)
                except BaseException:
                    tmp.unlink(missing_ok=True)
                    raise
                result.validator_output = check.output
                if not check.ok:
                    tmp.unlink(missing_ok=True)
                    LOG.error("Validation rejected candidate for %s: %s", target, check.output)
                    raise ValidationRejectedError(
                        f"Validation failed for {target}: {check.output}",
                        diagnostics=check.output,
                        stage=CommitStage.TEMP_WRITTEN.value,
                    )
                LOG.info("Validation passed for %s", target)
            result.stage = CommitStage.VALIDATED

            try:
                if existed and backup:
                    result.backup_path = backup_copy(target)
                result.stage = CommitStage.BACKED_UP
                if existed:
                    shutil.copymode(target, tmp)
                os.replace(tmp, target)
            except OSError as exc:
                tmp.unlink(missing_ok=True)
                raise StorageError(f"Failed to replace {target}: {exc}", stage=result.stage.value) from exc
            result.stage = CommitStage.COMMITTED
            LOG.info("Committed %s", target)

            if apply and self.reloader is not None:
                reload_result = self.reloader.apply()
                result.apply_output = reload_result.output
                if not reload_result.ok:
                    self._roll_back(target, result.backup_path, previous, reload_result.output)
                result.stage = CommitStage.APPLIED
            return result

    def _roll_back(self, target: Path, backup_path: Path | None, previous: str | None, reason: str) -> None:
        """Undo a committed file after a failed reload, then raise ApplyFailedError.

        Without a backup file the live text read before the commit is written
        back; a target that did not exist is removed.
        """
        LOG.error("Reload failed for %s, rolling back: %s", target, reason)
        try:
            if backup_path is not None:
                restore_from(backup_path, target)
            elif previous is not None:
                atomic_write(target, previous)
            else:
                target.unlink(missing_ok=True)
        except OSError as exc:
            LOG.critical("Rollback of %s failed: %s", target, exc)
            raise ApplyFailedError(
                f"Reload failed ({reason}) and restoring {target} also failed ({exc}); "
                "the configuration may be in a mismatched state.",
                rolled_back=False,
                backup_path=str(backup_path) if backup_path else None,
                stage=CommitStage.FAILED.value,
            ) from exc
        raise ApplyFailedError(
            f"Reload failed; {target} restored: {reason}",
            rolled_back=True,
            backup_path=str(backup_path) if backup_path else None,
            stage=CommitStage.FAILED.value,
        )

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from . import paths


DEFAULT_PACKAGE_TYPES = frozenset({"pubsync-plugin", "pubsync-theme"})


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings (pubsync.toml + environment overrides)."""

    web_root: Path
    storage_dir: Path
    package_types: frozenset[str] = DEFAULT_PACKAGE_TYPES
    lock_timeout: float = 10.0

    @property
    def ledger_path(self) -> Path:
        return paths.ledger_path(self.storage_dir)


@dataclass(frozen=True)
class LegacyEntry:
    """A bare string entry; the relative path is preserved under the package dir."""

    path: str


@dataclass(frozen=True)
class StructuredEntry:
    source: str
    target: str | None = None


AssetEntry = LegacyEntry | StructuredEntry


# preserve: legacy entry, full relative path kept under the package dir
# default:  target absent or "."
# webroot:  target "/" or "/."
# absolute: target starts with "/"
# relative: anything else, placed under the package dir
TargetRule = Literal["preserve", "default", "webroot", "absolute", "relative"]


@dataclass(frozen=True)
class CanonicalEntry:
    source: str
    rule: TargetRule
    target: str | None = None


@dataclass(frozen=True)
class ResolvedMapping:
    source: Path
    target: Path
    # Source path relative to the installation path (POSIX); used as ledger key.
    key: str
    # False for entries of a directory listing: a directory is created, its contents map separately.
    recursive: bool = True


@dataclass(frozen=True)
class PackageInfo:
    """Package metadata handed over by the host package manager."""

    name: str
    type: str
    install_path: Path
    public: tuple[Any, ...] = ()
    version: str | None = None


Operation = Literal["install", "update", "uninstall"]
ReportOperation = Literal["install", "update", "uninstall", "remove"]


@dataclass(frozen=True)
class PackageEvent:
    operation: Operation
    package: PackageInfo


OutcomeStatus = Literal["copied", "removed", "skipped", "warning", "error"]


@dataclass(frozen=True)
class EntryOutcome:
    status: OutcomeStatus
    message: str
    source: str | None = None
    target: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "source": self.source,
            "target": self.target,
        }


@dataclass(frozen=True)
class SyncReport:
    package: str
    operation: ReportOperation
    outcomes: tuple[EntryOutcome, ...] = ()
    # True when the package was filtered out (wrong type / nothing declared).
    ignored: bool = False
    mapping: dict[str, str] = field(default_factory=dict)

    def _with_status(self, status: OutcomeStatus) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def copied(self) -> list[EntryOutcome]:
        return self._with_status("copied")

    @property
    def removed(self) -> list[EntryOutcome]:
        return self._with_status("removed")

    @property
    def warnings(self) -> list[EntryOutcome]:
        return self._with_status("warning")

    @property
    def errors(self) -> list[EntryOutcome]:
        return self._with_status("error")

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "operation": self.operation,
            "ignored": self.ignored,
            "ok": self.ok,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "mapping": dict(self.mapping),
        }

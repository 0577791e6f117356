from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from .copier import copy_asset, prune_empty_dirs, prune_empty_tree, remove_asset
from .errors import CopyError, LedgerError, MalformedEntryError, MissingSourceError
from .ledger import MappingLedger
from .models import (
    DEFAULT_PACKAGE_TYPES,
    EntryOutcome,
    PackageEvent,
    PackageInfo,
    ReportOperation,
    Settings,
    SyncReport,
)
from .resolver import default_public_dir, parse_entry, resolve


log = logging.getLogger("pubsync.sync")


class Synchronizer:
    """Publish package assets into the web root and undo them from the ledger.

    Each lifecycle event runs inside one ledger transaction. Per-entry
    problems become outcomes on the report; they never abort the event.
    """

    def __init__(
        self,
        *,
        web_root: Path,
        ledger: MappingLedger,
        package_types: Iterable[str] = DEFAULT_PACKAGE_TYPES,
    ) -> None:
        self.web_root = Path(web_root)
        self.ledger = ledger
        self.package_types = frozenset(package_types)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Synchronizer":
        ledger = MappingLedger(settings.ledger_path, web_root=settings.web_root, lock_timeout=settings.lock_timeout)
        return cls(web_root=settings.web_root, ledger=ledger, package_types=settings.package_types)

    def is_managed(self, package: PackageInfo) -> bool:
        return package.type in self.package_types

    # -- events ----------------------------------------------------------

    def dispatch(self, event: PackageEvent) -> SyncReport:
        if event.operation == "install":
            return self.install(event.package)
        if event.operation == "update":
            return self.update(event.package)
        if event.operation == "uninstall":
            return self.uninstall(event.package)
        raise ValueError(f"unsupported operation: {event.operation!r}")

    def install(self, package: PackageInfo) -> SyncReport:
        if not self.is_managed(package) or not package.public:
            log.debug("ignoring %s (type %s)", package.name, package.type)
            return SyncReport(package=package.name, operation="install", ignored=True)
        return self._in_transaction(package.name, "install", lambda out: self._publish(package, out))

    def update(self, package: PackageInfo) -> SyncReport:
        """Remove whatever the ledger holds for the package, then install afresh.

        Removing first keeps files from the old version from being orphaned
        when targets move between versions.
        """

        if not self.is_managed(package):
            return SyncReport(package=package.name, operation="update", ignored=True)

        def body(out: list[EntryOutcome]) -> dict[str, str]:
            kept = self._unpublish(package.name, out)
            return self._publish(package, out, kept=kept)

        return self._in_transaction(package.name, "update", body)

    def uninstall(self, package: PackageInfo) -> SyncReport:
        if not self.is_managed(package):
            return SyncReport(package=package.name, operation="uninstall", ignored=True)
        return self.remove(package.name, operation="uninstall")

    def remove(self, name: str, *, operation: ReportOperation = "remove") -> SyncReport:
        """Ledger-only removal; works after the package itself is gone."""

        def body(out: list[EntryOutcome]) -> dict[str, str]:
            self._unpublish(name, out)
            return self.ledger.lookup(name) or {}

        return self._in_transaction(name, operation, body)

    def _in_transaction(
        self,
        name: str,
        operation: ReportOperation,
        body: Callable[[list[EntryOutcome]], dict[str, str]],
    ) -> SyncReport:
        outcomes: list[EntryOutcome] = []
        mapping: dict[str, str] = {}
        try:
            with self.ledger.transaction():
                mapping = body(outcomes)
        except LedgerError as e:
            # Files already copied stay in place; only the record is missing.
            log.error("failed to store file mappings for package %s: %s", name, e)
            outcomes.append(EntryOutcome(status="error", message=str(e)))
            mapping = {}
        return SyncReport(package=name, operation=operation, outcomes=tuple(outcomes), mapping=mapping)

    # -- phases ----------------------------------------------------------

    def _publish(
        self,
        package: PackageInfo,
        outcomes: list[EntryOutcome],
        *,
        kept: Mapping[str, Path] | None = None,
    ) -> dict[str, str]:
        """Copy every declared entry and record the successful ones.

        `kept` holds targets of an earlier mapping that could not be removed;
        they stay recorded unless a new copy takes over the same source key.
        """

        copied: dict[str, Path] = dict(kept or {})

        for raw in package.public:
            try:
                entry = parse_entry(raw)
                resolved = resolve(entry, package.install_path, package.name, self.web_root)
            except MalformedEntryError as e:
                log.warning("invalid public entry format in package %s: %s", package.name, e)
                outcomes.append(EntryOutcome(status="warning", message=str(e)))
                continue
            except MissingSourceError as e:
                log.warning("source path %s does not exist for package %s", e.source, package.name)
                outcomes.append(EntryOutcome(status="warning", message=str(e), source=str(e.source)))
                continue
            except OSError as e:
                log.error("unable to resolve public entry %r of package %s: %s", raw, package.name, e)
                outcomes.append(EntryOutcome(status="error", message=f"unable to resolve {raw!r}: {e}"))
                continue

            if not resolved:
                pattern = getattr(entry, "source", None)
                log.info("pattern %r matched nothing in package %s", pattern, package.name)
                outcomes.append(EntryOutcome(status="skipped", message=f"{pattern!r} matched nothing", source=pattern))
                continue

            for m in resolved:
                try:
                    copy_asset(m.source, m.target, recursive=m.recursive)
                except CopyError as e:
                    log.error("error processing entry for package %s: %s", package.name, e)
                    outcomes.append(EntryOutcome(status="error", message=str(e), source=m.key, target=str(m.target)))
                    continue
                log.info("copied %s to %s", m.source, m.target)
                copied[m.key] = m.target
                outcomes.append(
                    EntryOutcome(status="copied", message=f"copied {m.key}", source=m.key, target=str(m.target))
                )

        if not copied:
            return {}
        return self.ledger.upsert(package.name, copied)

    def _unpublish(self, name: str, outcomes: list[EntryOutcome]) -> dict[str, Path]:
        """Remove the recorded targets of `name`.

        Returns the targets that could not be removed; they stay in the ledger
        so a later run can retry them. The entry is dropped once nothing is left.
        """

        mapping = self.ledger.lookup(name)
        if mapping is None:
            log.debug("nothing recorded for %s", name)
            return {}

        failed: dict[str, Path] = {}
        for source, stored in sorted(mapping.items()):
            target = self.ledger.target_path(stored)
            try:
                if not remove_asset(target):
                    continue
            except OSError as e:
                log.error("unable to remove %s for package %s: %s", target, name, e)
                outcomes.append(EntryOutcome(status="error", message=str(e), source=source, target=str(target)))
                failed[source] = target
                continue
            log.info("removed %s during uninstallation of %s", target, name)
            outcomes.append(
                EntryOutcome(status="removed", message=f"removed {stored}", source=source, target=str(target))
            )

        pkg_dir = default_public_dir(self.web_root, name)
        try:
            prune_empty_tree(pkg_dir)
            prune_empty_dirs(pkg_dir, stop=self.web_root / "e")
        except OSError as e:
            log.warning("unable to prune empty directories of %s: %s", name, e)
            outcomes.append(EntryOutcome(status="warning", message=f"unable to prune {pkg_dir}: {e}"))

        if failed:
            self.ledger.upsert(name, failed)
        else:
            self.ledger.delete(name)
        return failed


def run_event(event: PackageEvent, *, settings: Settings) -> SyncReport:
    """Host entry point: build a Synchronizer from settings and dispatch one event."""

    return Synchronizer.from_settings(settings).dispatch(event)

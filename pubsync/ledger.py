"""Mapping ledger I/O.

The ledger is the single record of what was published for each package:

    {"acme/widgets": {"dist/app.js": "js/app.js", ...}, ...}

Keys are source paths relative to the package's installation path, values
are targets relative to the web root (or absolute paths when a target fell
outside it). Removal only ever reads this file, never package metadata.

Requirements:
- Stable JSON formatting (sorted keys, stable indentation)
- Exclusive access for a whole lifecycle event (lock file next to the ledger)
- Writes go through a sibling temp file + rename so the ledger is never torn
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Any

from filelock import FileLock, Timeout

from .errors import LedgerError


log = logging.getLogger("pubsync.ledger")

LedgerTable = dict[str, dict[str, str]]


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def _clean_table(data: Any) -> LedgerTable:
    if not isinstance(data, dict):
        return {}
    out: LedgerTable = {}
    for pkg, mapping in data.items():
        if not isinstance(pkg, str) or not isinstance(mapping, dict):
            continue
        out[pkg] = {k: v for k, v in mapping.items() if isinstance(k, str) and isinstance(v, str)}
    return out


class MappingLedger:
    def __init__(self, path: Path, *, web_root: Path, lock_timeout: float = 10.0) -> None:
        self.path = Path(path)
        self.web_root = Path(web_root)
        self.lock_timeout = lock_timeout
        self._lock = FileLock(str(self.path.with_name(self.path.name + ".lock")), timeout=lock_timeout)
        self._table: LedgerTable | None = None
        self._dirty = False

    # -- persistence -----------------------------------------------------

    def load(self) -> LedgerTable:
        """Read the ledger. A missing or unreadable file reads as empty."""

        if self._table is not None:
            return {k: dict(v) for k, v in self._table.items()}
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("unable to read ledger %s, treating it as empty: %s", self.path, e)
            return {}
        return _clean_table(data)

    def _write(self, table: LedgerTable) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(_canonical_json(table), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise LedgerError(self.path, f"unable to write ledger: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[LedgerTable]:
        """Hold the ledger exclusively; the table is written once on clean exit.

        Nested transactions join the outermost one.
        """

        if self._table is not None:
            yield self._table
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._lock.acquire()
        except Timeout as e:
            raise LedgerError(self.path, f"timed out after {self.lock_timeout}s waiting for ledger lock") from e
        except OSError as e:
            raise LedgerError(self.path, f"unable to lock ledger: {e}") from e

        try:
            self._table = self.load()
            self._dirty = False
            yield self._table
            if self._dirty:
                self._write(self._table)
        finally:
            self._table = None
            self._dirty = False
            self._lock.release()

    # -- path helpers ----------------------------------------------------

    def relativize(self, target: Path | str) -> str:
        """Store targets under the web root relative to it; anything else as an absolute path."""

        t = Path(os.path.abspath(target))
        root = Path(os.path.abspath(self.web_root))
        if t.is_relative_to(root) and t != root:
            return PurePosixPath(*t.relative_to(root).parts).as_posix()
        return str(t)

    def target_path(self, stored: str) -> Path:
        if os.path.isabs(stored):
            return Path(stored)
        return self.web_root / stored

    # -- table operations ------------------------------------------------

    def lookup(self, package: str) -> dict[str, str] | None:
        mapping = self.load().get(package)
        return dict(mapping) if mapping is not None else None

    def packages(self) -> list[str]:
        return sorted(self.load())

    def upsert(self, package: str, mapping: Mapping[str, Path | str]) -> dict[str, str]:
        """Replace the whole entry for `package`; returns what was stored."""

        stored = {src: self.relativize(tgt) for src, tgt in mapping.items()}
        with self.transaction() as table:
            table[package] = stored
            self._dirty = True
        log.debug("recorded %d mapping(s) for %s in %s", len(stored), package, self.path)
        return dict(stored)

    def delete(self, package: str) -> bool:
        with self.transaction() as table:
            if package not in table:
                return False
            del table[package]
            self._dirty = True
        log.debug("dropped ledger entry for %s", package)
        return True

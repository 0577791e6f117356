from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any


class PubsyncConfigError(Exception):
    """Base exception for pubsync config/manifest parsing and validation errors."""


@dataclass(frozen=True)
class ConfigParseError(PubsyncConfigError):
    """Raised when a TOML or JSON file cannot be parsed."""

    path: Path
    message: str
    lineno: int | None = None
    colno: int | None = None

    def __str__(self) -> str:
        loc = ""
        if self.lineno is not None and self.colno is not None:
            loc = f" (line {self.lineno}, column {self.colno})"
        return f"Invalid {self.path.suffix.lstrip('.').upper() or 'file'} in {self.path}: {self.message}{loc}"


@dataclass(frozen=True)
class ConfigValidationError(PubsyncConfigError):
    """Raised when a parsed file does not match the expected schema."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Invalid config in {self.path}: {self.message}"


class AssetError(Exception):
    """Base exception for a single public asset entry that cannot be processed."""


class MalformedEntryError(AssetError):
    """Entry is neither a string nor a table with a string `source`."""

    def __init__(self, raw: Any, reason: str = "expected a string or a table with `source`") -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"invalid public entry {raw!r}: {reason}")


class MissingSourceError(AssetError):
    def __init__(self, source: Path) -> None:
        self.source = source
        super().__init__(f"source path {source} does not exist")


class CopyError(AssetError):
    def __init__(self, source: Path, target: Path, cause: OSError) -> None:
        self.source = source
        self.target = target
        self.cause = cause
        super().__init__(f"failed to copy {source} to {target}: {cause}")


class LedgerError(Exception):
    """Raised when the mapping ledger cannot be locked or written."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")

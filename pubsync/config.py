from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from . import paths
from .errors import ConfigParseError, ConfigValidationError
from .models import DEFAULT_PACKAGE_TYPES, PackageInfo, Settings


try:  # Python 3.11+
    import tomllib as _tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover (dev envs < 3.11)
    import tomli as _tomllib  # type: ignore


PACKAGE_MANIFEST_FILENAMES = ("pubsync-package.toml", "composer.json")


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigValidationError(path=path, message="file not found") from e
    except OSError as e:
        raise ConfigValidationError(path=path, message=f"unable to read file: {e}") from e

    try:
        data = _tomllib.loads(text)
    except Exception as e:
        # tomllib/tomli both raise TOMLDecodeError with msg/lineno/colno.
        msg = getattr(e, "msg", str(e))
        lineno = getattr(e, "lineno", None)
        colno = getattr(e, "colno", None)
        raise ConfigParseError(path=path, message=str(msg), lineno=lineno, colno=colno) from e

    if not isinstance(data, dict):
        raise ConfigValidationError(path=path, message="top-level TOML must be a table")
    return data


def _load_json(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigValidationError(path=path, message="file not found") from e
    except OSError as e:
        raise ConfigValidationError(path=path, message=f"unable to read file: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigParseError(path=path, message=e.msg, lineno=e.lineno, colno=e.colno) from e

    if not isinstance(data, dict):
        raise ConfigValidationError(path=path, message="top-level JSON must be an object")
    return data


def _unknown_keys_message(unknown: set[str]) -> str:
    keys = ", ".join(sorted(unknown))
    return f"unknown keys: {keys}"


def _optional_table(path: Path, value: Any, where: str) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigValidationError(path=path, message=f"{where}: expected table")
    return value


def _require_str(path: Path, value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError(path=path, message=f"{where}: expected non-empty string")
    return value


def _optional_str(path: Path, value: Any, where: str) -> str | None:
    if value is None:
        return None
    return _require_str(path, value, where)


def _require_int(path: Path, value: Any, where: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(path=path, message=f"{where}: expected integer")
    return value


def _require_number(path: Path, value: Any, where: str) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigValidationError(path=path, message=f"{where}: expected number")
    return float(value)


def _require_str_list(path: Path, value: Any, where: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigValidationError(path=path, message=f"{where}: expected list of strings")
    return value


def load_settings(path: Path | None = None) -> Settings:
    """Load pubsync.toml (if any) and apply environment overrides.

    Precedence for the web root and storage dir:
      1) PUBLIC_DIR / PUBSYNC_STORAGE_DIR
      2) [pubsync] webRoot / storageDir
      3) "public" / "vendor"
    """

    p = path or paths.project_config_path()
    data: dict[str, Any] = {}
    if path is not None or p.exists():
        data = _load_toml(p)
    return _parse_settings(p, data)


def _parse_settings(path: Path, data: dict[str, Any]) -> Settings:
    if not data:
        return Settings(web_root=paths.web_root(), storage_dir=paths.storage_dir())

    unknown_top = set(data.keys()) - {"version", "pubsync"}
    if unknown_top:
        raise ConfigValidationError(path=path, message=_unknown_keys_message(unknown_top))

    version = _require_int(path, data.get("version", 1), "version")
    if version != 1:
        raise ConfigValidationError(path=path, message=f"version: expected 1, got {version}")

    web_default = "public"
    storage_default = "vendor"
    package_types = DEFAULT_PACKAGE_TYPES
    lock_timeout = 10.0

    tbl = _optional_table(path, data.get("pubsync"), "pubsync")
    if tbl is not None:
        allowed = {"webRoot", "storageDir", "packageTypes", "lockTimeout"}
        unknown = set(tbl.keys()) - allowed
        if unknown:
            raise ConfigValidationError(path=path, message=f"pubsync: {_unknown_keys_message(unknown)}")
        if "webRoot" in tbl:
            web_default = _require_str(path, tbl.get("webRoot"), "pubsync.webRoot")
        if "storageDir" in tbl:
            storage_default = _require_str(path, tbl.get("storageDir"), "pubsync.storageDir")
        if "packageTypes" in tbl:
            package_types = frozenset(_require_str_list(path, tbl.get("packageTypes"), "pubsync.packageTypes"))
        if "lockTimeout" in tbl:
            lock_timeout = _require_number(path, tbl.get("lockTimeout"), "pubsync.lockTimeout")
            if lock_timeout < 0:
                raise ConfigValidationError(path=path, message="pubsync.lockTimeout: expected >= 0")

    return Settings(
        web_root=paths.web_root(web_default),
        storage_dir=paths.storage_dir(storage_default),
        package_types=package_types,
        lock_timeout=lock_timeout,
    )


def package_manifest_path(path: Path) -> Path:
    """Locate the package manifest for a package directory (or return a file path as-is)."""

    if not path.is_dir():
        return path
    for name in PACKAGE_MANIFEST_FILENAMES:
        candidate = path / name
        if candidate.exists():
            return candidate
    return path / PACKAGE_MANIFEST_FILENAMES[0]


def parse_package_manifest(path: Path) -> PackageInfo:
    """Load a package manifest (pubsync-package.toml or composer.json) into a PackageInfo.

    The installation path is the directory holding the manifest. Entries under
    `extra.public` are kept raw; the resolver validates them one by one so a
    bad entry never rejects the whole package.
    """

    p = package_manifest_path(Path(path))
    data = _load_json(p) if p.suffix == ".json" else _load_toml(p)

    name = _require_str(p, data.get("name"), "name")
    pkg_type = _require_str(p, data.get("type"), "type")
    version = _optional_str(p, data.get("version"), "version")

    public: list[Any] = []
    extra = _optional_table(p, data.get("extra"), "extra")
    if extra is not None and extra.get("public") is not None:
        raw = extra.get("public")
        if not isinstance(raw, list):
            raise ConfigValidationError(path=p, message="extra.public: expected array")
        public = list(raw)

    return PackageInfo(
        name=name,
        type=pkg_type,
        install_path=Path(os.path.abspath(p.parent)),
        public=tuple(public),
        version=version,
    )

"""Public asset entry resolution.

Turns one declared `public` entry into concrete (source, target) pairs:

- legacy string entries keep their full relative path under the package's
  default public directory (`{webRoot}/e/{package}`);
- structured `{source, target}` entries pick a target base by rule
  (default dir, web root, absolute-style, or relative to the default dir);
- glob sources expand against the installation path. A trailing all-`*`
  segment copies the contents of the directory before it.

Nothing here copies files; the only filesystem access is existence checks
and glob expansion.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from typing import Any

from .errors import MalformedEntryError, MissingSourceError
from .models import AssetEntry, CanonicalEntry, LegacyEntry, ResolvedMapping, StructuredEntry


log = logging.getLogger("pubsync.resolver")

_TRAILING_STARS = re.compile(r"/\*+/?$")
_GLOB_META = re.compile(r"[?*\[\]]")
_ALL_STARS = re.compile(r"\*+")


def has_glob(path: str) -> bool:
    return "*" in path or "?" in path or "[" in path


def glob_stripped(pattern: str) -> str:
    """Stable base path for a pattern, used to name the target when none is given.

    Example: "assets/*" -> "assets", "img/logo?.png" -> "img/logo.png".
    """

    pattern = _TRAILING_STARS.sub("", pattern)
    return _GLOB_META.sub("", pattern)


def _basename(path: str) -> str:
    return PurePosixPath(path).name


def default_public_dir(web_root: Path, package_name: str) -> Path:
    return web_root / "e" / package_name


def parse_entry(raw: Any) -> AssetEntry:
    """Validate one raw `public` entry into a LegacyEntry or StructuredEntry."""

    if isinstance(raw, (LegacyEntry, StructuredEntry)):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            raise MalformedEntryError(raw, "empty path")
        return LegacyEntry(path=raw)
    if isinstance(raw, Mapping):
        source = raw.get("source")
        if not isinstance(source, str) or not source.strip():
            raise MalformedEntryError(raw, "`source` must be a non-empty string")
        target = raw.get("target")
        if target is not None and not isinstance(target, str):
            raise MalformedEntryError(raw, "`target` must be a string")
        return StructuredEntry(source=source, target=target)
    raise MalformedEntryError(raw)


def normalize_entry(entry: AssetEntry) -> CanonicalEntry:
    if isinstance(entry, LegacyEntry):
        return CanonicalEntry(source=entry.path, rule="preserve", target=entry.path)

    target = entry.target
    if target is None or target == ".":
        return CanonicalEntry(source=entry.source, rule="default")
    if target in ("/", "/."):
        return CanonicalEntry(source=entry.source, rule="webroot")
    if target.startswith("/"):
        return CanonicalEntry(source=entry.source, rule="absolute", target=target.lstrip("/"))
    return CanonicalEntry(source=entry.source, rule="relative", target=target)


def target_base(entry: CanonicalEntry, *, package_name: str, web_root: Path) -> Path:
    pkg_dir = default_public_dir(web_root, package_name)
    if entry.rule == "preserve":
        return pkg_dir / entry.source.lstrip("/")
    if entry.rule == "default":
        return pkg_dir / _basename(glob_stripped(entry.source))
    if entry.rule == "webroot":
        return web_root / _basename(glob_stripped(entry.source))
    if entry.rule in ("absolute", "relative") and os.path.normpath(entry.target or "") == ".":
        raise MalformedEntryError(entry.target, "target must name a path below its base directory")
    if entry.rule == "absolute":
        return web_root / (entry.target or "")
    return pkg_dir / (entry.target or "")


def _key(rel: str | PurePosixPath) -> str:
    return PurePosixPath(str(rel).lstrip("/")).as_posix()


def _escapes(target: Path, web_root: Path) -> bool:
    norm_target = Path(os.path.normpath(target))
    norm_root = Path(os.path.normpath(web_root))
    return not norm_target.is_relative_to(norm_root)


def _split_pattern(pattern: str) -> tuple[PurePosixPath, tuple[str, ...]]:
    """Split a pattern into its leading non-glob directory and the remaining segments."""

    parts = PurePosixPath(pattern.lstrip("/")).parts
    for i, part in enumerate(parts):
        if has_glob(part):
            return PurePosixPath(*parts[:i]), parts[i:]
    return PurePosixPath(*parts), ()


def _directory_contents(install_path: Path, rel_dir: PurePosixPath, base: Path) -> list[ResolvedMapping]:
    src_dir = install_path / rel_dir
    if not src_dir.is_dir():
        return []
    out: list[ResolvedMapping] = []
    for p in sorted(src_dir.rglob("*")):
        rel = p.relative_to(src_dir)
        out.append(
            ResolvedMapping(
                source=p,
                target=base / rel,
                key=_key(p.relative_to(install_path).as_posix()),
                recursive=False,
            )
        )
    return out


def _expand_pattern(install_path: Path, pattern: str, base: Path) -> list[ResolvedMapping]:
    static, rest = _split_pattern(pattern)
    if static.parts and len(rest) == 1 and _ALL_STARS.fullmatch(rest[0]):
        return _directory_contents(install_path, static, base)

    anchor = install_path / static
    out: list[ResolvedMapping] = []
    for p in sorted(install_path.glob(pattern.lstrip("/"))):
        if not (p.exists() or p.is_symlink()):
            continue
        out.append(
            ResolvedMapping(
                source=p,
                target=base / p.relative_to(anchor),
                key=_key(p.relative_to(install_path).as_posix()),
            )
        )
    return out


def resolve(
    entry: AssetEntry | Any,
    install_path: Path,
    package_name: str,
    web_root: Path,
) -> list[ResolvedMapping]:
    """Resolve one public entry into source/target pairs.

    Raises MalformedEntryError for entries of the wrong shape and
    MissingSourceError when a non-glob source does not exist. A glob that
    matches nothing resolves to an empty list.
    """

    canonical = normalize_entry(parse_entry(entry))
    base = target_base(canonical, package_name=package_name, web_root=web_root)
    if _escapes(base, web_root):
        log.warning("public entry %r of %s targets %s outside the web root", canonical.source, package_name, base)

    if canonical.rule != "preserve" and has_glob(canonical.source):
        mappings = _expand_pattern(install_path, canonical.source, base)
        log.debug("pattern %r of %s matched %d path(s)", canonical.source, package_name, len(mappings))
        return mappings

    source = install_path / canonical.source.lstrip("/")
    if not (source.exists() or source.is_symlink()):
        raise MissingSourceError(source)
    return [ResolvedMapping(source=source, target=base, key=_key(canonical.source))]

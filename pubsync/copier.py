from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path

from .errors import CopyError


def _rm_any(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
        return
    if path.is_dir():
        shutil.rmtree(path)


def _copy_file(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    tmp = dst.with_name(dst.name + ".tmp")
    _rm_any(tmp)
    shutil.copy2(src, tmp)
    tmp.replace(dst)


def copy_asset(source: Path, target: Path, *, recursive: bool = True) -> None:
    """Copy a file or a directory tree to `target`, creating missing parents.

    Directories are merged into an existing target; with `recursive=False`
    only the directory itself is created. Files are written next to the target
    and renamed into place. Existing content of the other kind is never
    replaced: a file onto a directory (or the reverse) raises CopyError, as
    does any other OS failure.
    """

    try:
        if source.is_dir():
            if target.exists() and not target.is_dir():
                raise NotADirectoryError(errno.ENOTDIR, "target exists and is not a directory", str(target))
            target.mkdir(parents=True, exist_ok=True)
            if recursive:
                shutil.copytree(source, target, symlinks=True, dirs_exist_ok=True)
            return
        if target.is_dir() and not target.is_symlink():
            raise IsADirectoryError(errno.EISDIR, "target is a directory", str(target))
        _copy_file(source, target)
    except OSError as e:
        raise CopyError(source, target, e) from e


def remove_asset(target: Path) -> bool:
    """Remove a file, symlink or directory tree. Returns False if nothing was there."""

    if not target.exists() and not target.is_symlink():
        return False
    _rm_any(target)
    return True


def is_dir_empty(path: Path) -> bool:
    with os.scandir(path) as it:
        return next(it, None) is None


def prune_empty_tree(root: Path) -> list[Path]:
    """Remove empty directories below `root`, deepest first. `root` itself is kept."""

    removed: list[Path] = []
    if not root.is_dir():
        return removed
    for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
        p = Path(dirpath)
        if p == root:
            continue
        try:
            if not is_dir_empty(p):
                continue
            p.rmdir()
        except OSError:
            continue
        removed.append(p)
    return removed


def prune_empty_dirs(path: Path, *, stop: Path) -> list[Path]:
    """Remove `path` and its parents while they are empty, never touching `stop` or above."""

    removed: list[Path] = []
    stop = Path(os.path.abspath(stop))
    cur = Path(os.path.abspath(path))
    while cur != stop and cur.is_relative_to(stop):
        try:
            if not cur.is_dir() or not is_dir_empty(cur):
                break
            cur.rmdir()
        except OSError:
            break
        removed.append(cur)
        cur = cur.parent
    return removed

from __future__ import annotations

import os
from pathlib import Path


LEDGER_FILENAME = "public-file-mappings.json"
PROJECT_CONFIG_FILENAME = "pubsync.toml"


def work_root() -> Path:
    root = os.environ.get("PUBSYNC_ROOT") or str(Path.cwd())
    return Path(root).expanduser().resolve()


def _under_root(value: str) -> Path:
    p = Path(value).expanduser()
    return p if p.is_absolute() else work_root() / p


def web_root(default: str = "public") -> Path:
    """Directory whose contents are served publicly.

    `PUBLIC_DIR` wins over the configured default; relative values are taken
    from the work root.
    """

    return _under_root(os.environ.get("PUBLIC_DIR") or default)


def storage_dir(default: str = "vendor") -> Path:
    """Directory holding the ledger (next to the host's dependency cache)."""

    return _under_root(os.environ.get("PUBSYNC_STORAGE_DIR") or default)


def ledger_path(storage: Path | None = None) -> Path:
    return (storage or storage_dir()) / LEDGER_FILENAME


def project_config_path() -> Path:
    return work_root() / PROJECT_CONFIG_FILENAME

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path

from .config import load_settings, parse_package_manifest
from .errors import LedgerError, PubsyncConfigError
from .ledger import MappingLedger
from .models import PackageEvent, SyncReport
from .sync import Synchronizer


def _apply_root_selection(args: argparse.Namespace) -> None:
    """Select a PUBSYNC_ROOT for this CLI invocation.

    Precedence:
      1) Explicit --root
      2) Existing PUBSYNC_ROOT
      3) cwd
    """

    explicit_root: Path | None = getattr(args, "root", None)
    if explicit_root is not None:
        os.environ["PUBSYNC_ROOT"] = str(Path(explicit_root).expanduser().resolve())
    elif not os.environ.get("PUBSYNC_ROOT"):
        os.environ["PUBSYNC_ROOT"] = str(Path.cwd().resolve())


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if args.verbose:
        level = logging.INFO if args.verbose == 1 else logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pubsync",
        description="Publish package public assets into the web root and undo them on removal",
    )
    p.add_argument("--root", type=Path, default=None, help="Explicit project root")
    p.add_argument("--config", type=Path, default=None, help="Settings file (default: <root>/pubsync.toml)")
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0, help="More log output (repeatable)")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log errors")

    sub = p.add_subparsers(dest="cmd", required=True)

    for op, help_text in (
        ("install", "Copy a package's public assets and record them"),
        ("update", "Remove the recorded assets of a package, then install again"),
        ("uninstall", "Remove the recorded assets of a package"),
    ):
        sp = sub.add_parser(op, help=help_text)
        sp.add_argument("package", type=Path, help="Package directory or manifest file")
        sp.add_argument("--json", dest="json_output", action="store_true", help="Output the report as JSON")

    rem = sub.add_parser("remove", help="Remove recorded assets by package name (no manifest needed)")
    rem.add_argument("name")
    rem.add_argument("--json", dest="json_output", action="store_true", help="Output the report as JSON")

    sub.add_parser("list", help="List packages recorded in the ledger")

    show = sub.add_parser("show", help="Show the recorded mapping of a package")
    show.add_argument("name")
    show.add_argument("--json", dest="json_output", action="store_true", help="Output as JSON")

    return p


def format_report(report: SyncReport) -> str:
    if report.ignored:
        return f"{report.package}: nothing to {report.operation}\n"
    lines = [f"{report.package}: {report.operation}"]
    for o in report.outcomes:
        if o.status in ("copied", "removed"):
            lines.append(f"  {o.status}: {o.target}")
        else:
            lines.append(f"  {o.status}: {o.message}")
    lines.append(
        f"  {len(report.copied)} copied, {len(report.removed)} removed, "
        f"{len(report.warnings)} warning(s), {len(report.errors)} error(s)"
    )
    return "\n".join(lines) + "\n"


def _print_report(report: SyncReport, *, as_json: bool) -> int:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        print(format_report(report), end="")
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _apply_root_selection(args)
    _configure_logging(args)

    try:
        return _run(args)
    except PubsyncConfigError as e:
        print(f"error: {e}")
        return 2
    except LedgerError as e:
        print(f"error: {e}")
        return 3


def _run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)

    if args.cmd in ("install", "update", "uninstall"):
        package = parse_package_manifest(args.package)
        syncer = Synchronizer.from_settings(settings)
        report = syncer.dispatch(PackageEvent(operation=args.cmd, package=package))
        return _print_report(report, as_json=args.json_output)

    if args.cmd == "remove":
        report = Synchronizer.from_settings(settings).remove(args.name)
        return _print_report(report, as_json=args.json_output)

    ledger = MappingLedger(settings.ledger_path, web_root=settings.web_root, lock_timeout=settings.lock_timeout)

    if args.cmd == "list":
        for name in ledger.packages():
            print(name)
        return 0

    if args.cmd == "show":
        mapping = ledger.lookup(args.name)
        if mapping is None:
            print(f"error: {args.name} is not recorded in {ledger.path}")
            return 4
        if args.json_output:
            print(json.dumps(mapping, indent=2, sort_keys=True))
        else:
            for src, tgt in sorted(mapping.items()):
                print(f"{src} -> {tgt}")
        return 0

    raise AssertionError(f"unhandled command: {args.cmd}")  # pragma: no cover

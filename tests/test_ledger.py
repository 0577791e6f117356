"""Tests for the public-file mapping ledger."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from filelock import FileLock

from pubsync.errors import LedgerError
from pubsync.ledger import MappingLedger


def _ledger(tmp_path: Path, **kw) -> MappingLedger:
    return MappingLedger(tmp_path / "vendor" / "public-file-mappings.json", web_root=tmp_path / "public", **kw)


class TestMappingLedger:
    def test_missing_file_reads_empty_and_is_created_lazily(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        assert ledger.load() == {}
        assert ledger.lookup("acme/widgets") is None
        assert not ledger.path.exists()

    def test_upsert_then_lookup_relativizes_targets(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        web = tmp_path / "public"
        outside = tmp_path / "elsewhere" / "x.txt"
        stored = ledger.upsert(
            "acme/widgets",
            {
                "dist/app.js": web / "js" / "app.js",
                "css/app.css": web / "e" / "acme" / "widgets" / "css" / "app.css",
                "x.txt": outside,
            },
        )
        expected = {
            "dist/app.js": "js/app.js",
            "css/app.css": "e/acme/widgets/css/app.css",
            "x.txt": str(outside),
        }
        assert stored == expected
        assert ledger.lookup("acme/widgets") == expected
        assert ledger.target_path("js/app.js") == web / "js" / "app.js"
        assert ledger.target_path(str(outside)) == outside

    def test_upsert_replaces_rather_than_merges(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        web = tmp_path / "public"
        ledger.upsert("acme/widgets", {"a.js": web / "a.js"})
        ledger.upsert("acme/widgets", {"b.js": web / "b.js"})
        assert ledger.lookup("acme/widgets") == {"b.js": "b.js"}

    def test_json_output_is_pretty_and_sorted(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        web = tmp_path / "public"
        ledger.upsert("zeta/pkg", {"z.js": web / "z.js"})
        ledger.upsert("acme/widgets", {"dist/app.js": web / "js" / "app.js"})

        assert ledger.path.read_text(encoding="utf-8") == (
            "{\n"
            '  "acme/widgets": {\n'
            '    "dist/app.js": "js/app.js"\n'
            "  },\n"
            '  "zeta/pkg": {\n'
            '    "z.js": "z.js"\n'
            "  }\n"
            "}\n"
        )
        assert ledger.packages() == ["acme/widgets", "zeta/pkg"]

    def test_delete_and_missing_delete_is_noop(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        ledger.upsert("acme/widgets", {"a.js": tmp_path / "public" / "a.js"})
        assert ledger.delete("acme/widgets") is True
        assert ledger.lookup("acme/widgets") is None
        assert ledger.delete("acme/widgets") is False
        assert json.loads(ledger.path.read_text(encoding="utf-8")) == {}

    def test_unreadable_ledger_degrades_to_empty(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        ledger = _ledger(tmp_path)
        ledger.path.parent.mkdir(parents=True)
        ledger.path.write_text("{not json", encoding="utf-8")

        with caplog.at_level("ERROR", logger="pubsync.ledger"):
            assert ledger.load() == {}
        assert "treating it as empty" in caplog.text

        ledger.upsert("acme/widgets", {"a.js": tmp_path / "public" / "a.js"})
        assert ledger.lookup("acme/widgets") == {"a.js": "a.js"}

    def test_invalid_shapes_are_dropped(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        ledger.path.parent.mkdir(parents=True)
        ledger.path.write_text(
            json.dumps({"ok/pkg": {"a": "b", "n": 1}, "bad/pkg": ["x"]}),
            encoding="utf-8",
        )
        assert ledger.load() == {"ok/pkg": {"a": "b"}}

    def test_transaction_writes_once_on_exit(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        web = tmp_path / "public"
        with ledger.transaction():
            ledger.upsert("a/pkg", {"a.js": web / "a.js"})
            ledger.upsert("b/pkg", {"b.js": web / "b.js"})
            assert not ledger.path.exists()
            assert ledger.lookup("a/pkg") == {"a.js": "a.js"}
        assert ledger.packages() == ["a/pkg", "b/pkg"]

    def test_transaction_discards_changes_on_exception(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        web = tmp_path / "public"
        ledger.upsert("a/pkg", {"a.js": web / "a.js"})

        with pytest.raises(RuntimeError):
            with ledger.transaction():
                ledger.delete("a/pkg")
                raise RuntimeError("boom")
        assert ledger.lookup("a/pkg") == {"a.js": "a.js"}

    def test_lock_timeout_raises_ledger_error(self, tmp_path: Path):
        ledger = _ledger(tmp_path, lock_timeout=0)
        ledger.path.parent.mkdir(parents=True)
        other = FileLock(str(ledger.path) + ".lock")
        with other:
            with pytest.raises(LedgerError):
                ledger.upsert("acme/widgets", {"a.js": tmp_path / "public" / "a.js"})
        assert ledger.lookup("acme/widgets") is None

    def test_write_failure_raises_ledger_error(self, tmp_path: Path):
        ledger = _ledger(tmp_path)
        ledger.path.mkdir(parents=True)  # a directory where the file should go
        with pytest.raises(LedgerError):
            ledger.upsert("acme/widgets", {"a.js": tmp_path / "public" / "a.js"})

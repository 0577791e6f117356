from __future__ import annotations

import json
from pathlib import Path

import pytest

from pubsync.cli import main


PKG = "acme/widgets"


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("PUBSYNC_ROOT", str(tmp_path))
    monkeypatch.delenv("PUBLIC_DIR", raising=False)
    monkeypatch.delenv("PUBSYNC_STORAGE_DIR", raising=False)
    return tmp_path


def _write_package(root: Path, public: str, *, type: str = "pubsync-plugin") -> Path:
    pkg = root / "vendor" / "acme" / "widgets"
    (pkg / "css").mkdir(parents=True, exist_ok=True)
    (pkg / "css" / "app.css").write_text("body{}", encoding="utf-8")
    (pkg / "dist").mkdir(exist_ok=True)
    (pkg / "dist" / "app.js").write_text("x", encoding="utf-8")
    (pkg / "pubsync-package.toml").write_text(
        f'name = "{PKG}"\ntype = "{type}"\n\n[extra]\npublic = {public}\n',
        encoding="utf-8",
    )
    return pkg


def test_install_show_list(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '["css/app.css", { source = "dist/*.js", target = "/js" }]')

    assert main(["install", str(pkg)]) == 0
    out = capsys.readouterr().out
    assert f"{PKG}: install" in out
    assert "2 copied, 0 removed, 0 warning(s), 0 error(s)" in out
    assert (project / "public" / "e" / PKG / "css" / "app.css").exists()
    assert (project / "public" / "js" / "app.js").exists()

    assert main(["list"]) == 0
    assert capsys.readouterr().out == f"{PKG}\n"

    assert main(["show", PKG]) == 0
    assert capsys.readouterr().out == (
        "css/app.css -> e/acme/widgets/css/app.css\n"
        "dist/app.js -> js/app.js\n"
    )

    assert main(["show", PKG, "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == {
        "css/app.css": "e/acme/widgets/css/app.css",
        "dist/app.js": "js/app.js",
    }


def test_update_then_uninstall(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '[{ source = "dist/app.js", target = "/a.js" }]')
    assert main(["install", str(pkg)]) == 0

    _write_package(project, '[{ source = "dist/app.js", target = "/b.js" }]')
    assert main(["update", str(pkg)]) == 0
    assert not (project / "public" / "a.js").exists()
    assert (project / "public" / "b.js").exists()

    assert main(["uninstall", str(pkg / "pubsync-package.toml")]) == 0
    assert not (project / "public" / "b.js").exists()
    capsys.readouterr()
    assert main(["list"]) == 0
    assert capsys.readouterr().out == ""


def test_remove_by_name_without_manifest(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '["css/app.css"]')
    assert main(["install", str(pkg)]) == 0
    (pkg / "pubsync-package.toml").unlink()

    assert main(["remove", PKG]) == 0
    out = capsys.readouterr().out
    assert f"{PKG}: remove" in out
    assert not (project / "public" / "e" / "acme").exists()


def test_unmanaged_package_reports_nothing_to_do(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '["css/app.css"]', type="library")
    assert main(["install", str(pkg)]) == 0
    assert capsys.readouterr().out == f"{PKG}: nothing to install\n"
    assert not (project / "public").exists()


def test_entry_errors_exit_1(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '[{ source = "css/app.css", target = "/blocked/app.css" }]')
    (project / "public").mkdir()
    (project / "public" / "blocked").write_text("a file", encoding="utf-8")

    assert main(["install", str(pkg)]) == 1
    assert "1 error(s)" in capsys.readouterr().out


def test_missing_manifest_exits_2(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    empty = project / "empty"
    empty.mkdir()
    assert main(["install", str(empty)]) == 2
    assert capsys.readouterr().out.startswith("error: Invalid config in ")


def test_bad_settings_file_exits_2(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (project / "pubsync.toml").write_text("version = 2\n", encoding="utf-8")
    assert main(["list"]) == 2
    assert "version: expected 1, got 2" in capsys.readouterr().out


def test_show_unknown_package_exits_4(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["show", "nobody/nothing"]) == 4
    assert "nobody/nothing is not recorded" in capsys.readouterr().out


def test_explicit_root_and_public_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("PUBSYNC_ROOT", str(tmp_path / "elsewhere"))
    monkeypatch.setenv("PUBLIC_DIR", "htdocs")
    monkeypatch.delenv("PUBSYNC_STORAGE_DIR", raising=False)
    pkg = _write_package(tmp_path, '["css/app.css"]')

    assert main(["--root", str(tmp_path), "install", str(pkg)]) == 0
    assert (tmp_path / "htdocs" / "e" / PKG / "css" / "app.css").exists()
    assert (tmp_path / "vendor" / "public-file-mappings.json").exists()


def test_json_report(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pkg = _write_package(project, '["css/app.css", "missing.css"]')

    assert main(["install", str(pkg), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["package"] == PKG
    assert data["operation"] == "install"
    assert data["ok"] is True
    assert [o["status"] for o in data["outcomes"]] == ["copied", "warning"]
    assert data["mapping"] == {"css/app.css": "e/acme/widgets/css/app.css"}

    assert main(["remove", PKG, "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [o["status"] for o in data["outcomes"]] == ["removed"]
    assert data["mapping"] == {}

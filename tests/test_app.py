# test_app.py -- Command-line entry point

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from netflow_collector import __version__
from netflow_collector.app import build_parser, main


def _config(tmp_path: Path, db_path: Path) -> Path:
    path = tmp_path / "nf_sond.ini"
    path.write_text(
        "[Database]\n"
        "type = sqlite\n"
        f"sqlite_path = {db_path}\n"
        "\n"
        "[SondeCount]\n"
        "count = 1\n"
        "\n"
        "[Sonda1]\n"
        "name = core\n"
        "port = 2055\n"
    )
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in ("DB_TYPE", "SQLITE_PATH", "CSV_PATH", "NF_CONFIG", "NF_STATUS_PORT"):
        monkeypatch.delenv(key, raising=False)


class TestParser:
    def test_flags(self):
        args = build_parser().parse_args(["-d", "--checkdb", "--diag", "dump.txt", "--config", "x.ini"])
        assert args.display
        assert args.checkdb
        assert args.diag == "dump.txt"
        assert args.config == "x.ini"

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert not args.version
        assert args.diag is None
        assert args.config == "nf_sond.ini"


class TestMain:
    def test_version(self, capsys: pytest.CaptureFixture[str]):
        assert main(["-v"]) == 0
        out = capsys.readouterr().out
        assert f"Version {__version__}" in out
        assert "Author:" in out

    def test_missing_config_exits_1(self, tmp_path: Path):
        assert main(["--config", str(tmp_path / "missing.ini")]) == 1

    def test_checkdb_creates_table(self, tmp_path: Path):
        db_path = tmp_path / "flows.db"
        assert main(["--config", str(_config(tmp_path, db_path)), "--checkdb"]) == 0
        conn = sqlite3.connect(str(db_path))
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='NetFlowData'"
        ).fetchone()
        conn.close()
        assert row is not None

    def test_checkdb_failure_exits_1(self, tmp_path: Path):
        db_path = tmp_path / "no" / "such" / "flows.db"
        assert main(["--config", str(_config(tmp_path, db_path)), "--checkdb"]) == 1

    def test_unwritable_diag_file_exits_1(self, tmp_path: Path):
        cfg = _config(tmp_path, tmp_path / "flows.db")
        assert main(["--config", str(cfg), "--diag", str(tmp_path), "--checkdb"]) == 1

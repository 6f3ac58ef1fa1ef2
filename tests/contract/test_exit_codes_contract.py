from __future__ import annotations

import re
from contextlib import contextmanager
from pathlib import Path

import pytest

from conftest import FakeStore, damaged_xls_bytes, damaged_xlsx_bytes, make_workbook
from petro_import.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from petro_import.cli.__main__ import main as cli_main
from petro_import.db.store import StoreUnavailableError

"""Exit code contract: 0 all written, 2 partial failure, 1 fatal."""

SUMMARY_RE = re.compile(
    r"^SUMMARY entity=\w+ sheets=\d+ found=\d+ success=\d+ failed=\d+ skipped_rows=\d+ "
    r"batches=\d+ avg_batch_sec=[0-9.]+ p95_batch_sec=[0-9.]+ elapsed_sec=[0-9.]+$",
    re.MULTILINE,
)


def _use_store(monkeypatch, store: FakeStore) -> None:
    @contextmanager
    def fake_connect(db_cfg):
        yield store

    monkeypatch.setattr("petro_import.cli.__main__.connect_store", fake_connect)


def test_exit_code_fatal_without_config(temp_workdir: Path, capsys):
    assert cli_main(["rocks"]) == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, rock_workbook: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore())
    assert cli_main(["rocks"]) == EXIT_SUCCESS_ALL
    out = capsys.readouterr().out
    assert SUMMARY_RE.search(out)
    assert "SUMMARY entity=rocks sheets=2 found=3 success=3 failed=0 skipped_rows=1 batches=2 " in out


def test_exit_code_partial_failure(write_config, rock_workbook: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore(fail_calls={1}))
    assert cli_main(["rocks"]) == EXIT_PARTIAL_FAILURE
    out = capsys.readouterr().out
    assert "success=1 failed=2" in out
    assert "ERROR batch 1 failed (records 0-1)" in out


def test_exit_code_every_batch_failed(write_config, rock_workbook: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore(fail_calls={1, 2}))
    assert cli_main(["rocks"]) == EXIT_FATAL
    assert "success=0 failed=3" in capsys.readouterr().out


def test_exit_code_store_unreachable(write_config, rock_workbook: Path, monkeypatch, capsys):
    @contextmanager
    def refuse(db_cfg):
        raise StoreUnavailableError("store unreachable: connection refused")
        yield  # pragma: no cover

    monkeypatch.setattr("petro_import.cli.__main__.connect_store", refuse)
    assert cli_main(["rocks"]) == EXIT_FATAL
    out = capsys.readouterr().out
    assert "ERROR store: store unreachable" in out
    assert "SUMMARY" not in out


def test_exit_code_store_lost_mid_run(write_config, rock_workbook: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore(unavailable_on=2))
    assert cli_main(["rocks"]) == EXIT_FATAL


def test_exit_code_missing_workbook(write_config, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore())
    assert cli_main(["rocks"]) == EXIT_FATAL
    assert "ERROR workbook not found: data/rocks.xlsx" in capsys.readouterr().out


def test_exit_code_invalid_workbook(write_config, temp_workdir: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore())
    bad = temp_workdir / "data" / "bad.xlsx"
    bad.write_bytes(b"not a workbook")
    assert cli_main(["rocks", "--file", str(bad)]) == EXIT_FATAL
    assert "ERROR workbook:" in capsys.readouterr().out


@pytest.mark.parametrize(
    ("name", "content"), [("legacy.xls", damaged_xls_bytes()), ("broken.xlsx", damaged_xlsx_bytes())]
)
def test_exit_code_damaged_workbook(write_config, temp_workdir: Path, monkeypatch, capsys, name, content):
    _use_store(monkeypatch, FakeStore())
    bad = temp_workdir / "data" / name
    bad.write_bytes(content)
    assert cli_main(["rocks", "--file", str(bad)]) == EXIT_FATAL
    assert "ERROR workbook: unable to read" in capsys.readouterr().out


def test_exit_code_unexpected_error(write_config, rock_workbook: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore())

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("petro_import.cli.__main__.run_import", broken)
    assert cli_main(["rocks"]) == EXIT_FATAL
    out = capsys.readouterr().out
    assert "ERROR unexpected: boom" in out
    assert "SUMMARY" not in out


def test_exit_code_no_records(write_config, temp_workdir: Path, monkeypatch, capsys):
    _use_store(monkeypatch, FakeStore())
    path = make_workbook(temp_workdir / "data" / "rocks.xlsx", {"Igneous": [{"Hardness": "5"}]})
    assert cli_main(["rocks", "--file", str(path)]) == EXIT_FATAL
    assert "ERROR processing: No valid rocks found in the Excel file" in capsys.readouterr().out


@pytest.mark.parametrize("entity", ["rocks", "minerals"])
def test_exit_code_no_default_file(temp_workdir: Path, entity: str, capsys):
    (temp_workdir / "config" / "import.yml").write_text(
        f"entities:\n  {entity}:\n    batch_size: 5\n", encoding="utf-8"
    )
    assert cli_main([entity]) == EXIT_FATAL
    assert f"entities.{entity}.default_file not set" in capsys.readouterr().out

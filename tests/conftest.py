# Shared pytest fixtures
from __future__ import annotations

import io
import logging
import tempfile
import zipfile
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from petro_import.db.store import StoreError, StoreUnavailableError
from petro_import.logging.init import LOGGER_NAME, reset_logging


@pytest.fixture(autouse=True)
def _fresh_logging():
    # the labeled handler binds sys.stdout at setup time; rebuild it per test for capsys
    reset_logging()
    yield
    reset_logging()
    app_logger = logging.getLogger(LOGGER_NAME)
    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("PETRO_IMPORT_CONFIG", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """entities:
  rocks:
    default_file: ./data/rocks.xlsx
    batch_size: 2
    batch_delay_seconds: 0
  minerals:
    default_file: ./data/minerals.xlsx
    batch_size: 100
    batch_delay_seconds: 0
    skip_sheets: [Sheet1]
code_strategy: index
error_log_dir: ./logs
upload:
  max_bytes: 1048576
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: petro_core
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def make_workbook(path: Path, sheets: Mapping[str, Sequence[Mapping[str, Any]]]) -> Path:
    """Write a real .xlsx: one sheet per key, header row taken from the row keys."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(list(rows)).to_excel(writer, sheet_name=sheet_name, index=False)
    return path


def damaged_xls_bytes() -> bytes:
    """OLE2 signature followed by zeros: routed to xlrd, which rejects the compound document."""
    return b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 1024


def damaged_xlsx_bytes() -> bytes:
    """A zip laid out like an .xlsx whose XML parts are truncated."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types xmlns=")
        zf.writestr("xl/workbook.xml", "<workbook><sheets><sheet")
    return buf.getvalue()


@pytest.fixture()
def rock_workbook(temp_workdir: Path) -> Path:
    return make_workbook(
        temp_workdir / "data" / "rocks.xlsx",
        {
            "Igneous Rocks": [
                {"Rock Name": "Granite", "Hardness": "6-7", "Latitude": "7.0622", "Longitude": "125.6072"},
                {"Rock Name": "Basalt", "Hardness": "6", "Latitude": "", "Longitude": ""},
                {"Rock Name": "", "Hardness": "5", "Latitude": "", "Longitude": ""},
            ],
            "Sedimentary": [
                {"Rock Code": "S-100", "Rock Name": "Sandstone", "Bedding": "cross-bedded"},
            ],
            "_Metadata": [
                {"Rock Name": "not a rock", "Hardness": "n/a"},
            ],
        },
    )


class FakeStore:
    """In-memory RowStore keyed by the conflict column.

    fail_calls: 1-based upsert call numbers that raise StoreError
    unavailable_on: upsert call number that raises StoreUnavailableError
    """

    def __init__(self, fail_calls: Iterable[int] = (), unavailable_on: int | None = None) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[list[dict[str, Any]]] = []
        self.fail_calls = set(fail_calls)
        self.unavailable_on = unavailable_on
        self.existence_checks = 0

    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str) -> int:
        self.calls.append([dict(r) for r in rows])
        n = len(self.calls)
        if n == self.unavailable_on:
            raise StoreUnavailableError("store unreachable: connection refused")
        if n in self.fail_calls:
            raise StoreError('new row violates check constraint "rocks_name_check"')
        for row in rows:
            self.rows[row[on_conflict]] = dict(row)
        return len(rows)

    def existing_codes(self, table: str, code_column: str, codes: Iterable[str]) -> set[str]:
        self.existence_checks += 1
        return {c for c in codes if c in self.rows}

    def select(self, table: str, columns: Sequence[str]) -> list[dict[str, Any]]:
        return [{c: row.get(c) for c in columns} for row in self.rows.values()]


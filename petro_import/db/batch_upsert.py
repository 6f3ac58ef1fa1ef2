from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT ... ON CONFLICT DO UPDATE via psycopg2.extras.execute_values.

Every non-key column is overwritten from EXCLUDED (full-record overwrite, no
partial merge). Rows of one call must have unique conflict keys: Postgres
rejects a statement that touches the same row twice.
"""


class BatchUpsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single execute_values call."""
    batch_size: int
    elapsed_seconds: float


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def build_upsert_sql(table: str, columns: Sequence[str], conflict_column: str) -> str:
    if conflict_column not in columns:
        raise BatchUpsertError(f"conflict column {conflict_column!r} not among insert columns")
    cols_sql = ",".join(_quote(c) for c in columns)
    updates = [f"{_quote(c)} = EXCLUDED.{_quote(c)}" for c in columns if c != conflict_column]
    sql = f"INSERT INTO {_quote(table)} ({cols_sql}) VALUES %s ON CONFLICT ({_quote(conflict_column)})"
    if updates:
        sql += " DO UPDATE SET " + ", ".join(updates)
    else:
        sql += " DO NOTHING"
    return sql


def batch_upsert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    conflict_column: str,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> int:
    """Upsert rows; returns the number of rows sent.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table (from an entity schema, not user input)
    columns: column order of every row
    rows: row value sequences
    conflict_column: unique column used as the ON CONFLICT target
    page_size: execute_values page size
    metrics_callback: receives BatchMetrics after the call (not invoked for empty input)
    """
    rows_list = list(rows)
    if not rows_list:
        return 0

    sql = build_upsert_sql(table, columns, conflict_column)

    start_time = time.time()
    try:
        execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchUpsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                )
            )

    return len(rows_list)

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Protocol

import psycopg2

from ..config.loader import DatabaseConfig
from .batch_upsert import BatchMetrics, BatchUpsertError, batch_upsert

"""Row store: the hosted Postgres the catalog lives in.

The pipeline only needs upsert-by-unique-column and an existence check; select
serves the duplicate-name report. Each upsert commits on its own, so a failed
batch never takes earlier batches with it.
"""

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A single store call failed (constraint violation, bad value, ...)."""


class StoreUnavailableError(StoreError):
    """The store cannot be reached; continuing the run is pointless."""


class RowStore(Protocol):
    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str) -> int: ...

    def existing_codes(self, table: str, code_column: str, codes: Iterable[str]) -> set[str]: ...

    def select(self, table: str, columns: Sequence[str]) -> list[dict[str, Any]]: ...


class PostgresRowStore:
    """RowStore over a psycopg2 connection (autocommit off, one transaction per call)."""

    def __init__(self, connection: Any, page_size: int = 1000) -> None:
        self.connection = connection
        self.page_size = page_size

    def _lost(self, error: BaseException) -> bool:
        cause = error.__cause__ if isinstance(error, BatchUpsertError) else error
        return isinstance(cause, psycopg2.InterfaceError) or bool(getattr(self.connection, "closed", 0))

    def _fail(self, error: Exception) -> StoreError:
        if self._lost(error):
            return StoreUnavailableError(f"store unreachable: {error}")
        try:
            self.connection.rollback()
        except psycopg2.Error as e:
            return StoreUnavailableError(f"store unreachable: {e}")
        return StoreError(str(error))

    def _log_metrics(self, metrics: BatchMetrics) -> None:
        logger.debug("upsert rows=%d elapsed=%.3fs", metrics.batch_size, metrics.elapsed_seconds)

    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str) -> int:
        if not rows:
            return 0
        columns = list(rows[0].keys())
        values = [[row.get(c) for c in columns] for row in rows]
        try:
            with self.connection.cursor() as cur:
                count = batch_upsert(
                    cur,
                    table,
                    columns,
                    values,
                    conflict_column=on_conflict,
                    page_size=self.page_size,
                    metrics_callback=self._log_metrics,
                )
            self.connection.commit()
        except (BatchUpsertError, psycopg2.Error) as e:
            raise self._fail(e) from e
        return count

    def existing_codes(self, table: str, code_column: str, codes: Iterable[str]) -> set[str]:
        codes = list(codes)
        if not codes:
            return set()
        sql = f'SELECT "{code_column}" FROM "{table}" WHERE "{code_column}" = ANY(%s)'
        try:
            with self.connection.cursor() as cur:
                cur.execute(sql, (codes,))
                found = {r[0] for r in cur.fetchall()}
            self.connection.commit()
        except psycopg2.Error as e:
            raise self._fail(e) from e
        return found

    def select(self, table: str, columns: Sequence[str]) -> list[dict[str, Any]]:
        cols_sql = ",".join(f'"{c}"' for c in columns)
        try:
            with self.connection.cursor() as cur:
                cur.execute(f'SELECT {cols_sql} FROM "{table}"')
                names = [d[0] for d in cur.description]
                rows = [dict(zip(names, r, strict=False)) for r in cur.fetchall()]
            self.connection.commit()
        except psycopg2.Error as e:
            raise self._fail(e) from e
        return rows


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string, environment first.

    Priority:
        1. DATABASE_URL / PGDSN (whole DSN)
        2. database.dsn from the config file
        3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back to the
           matching database.* config values
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def connect_store(db_cfg: DatabaseConfig) -> Iterator[PostgresRowStore]:
    """Open a connection and yield a PostgresRowStore; always closes the connection."""
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise StoreUnavailableError(f"store unreachable: {e}") from e
    conn.autocommit = False
    try:
        yield PostgresRowStore(conn)
    finally:
        if not conn.closed:
            conn.close()

from __future__ import annotations

import psycopg2
import pytest

from petro_import.config.loader import DatabaseConfig
from petro_import.db.store import (
    PostgresRowStore,
    StoreError,
    StoreUnavailableError,
    connect_store,
    resolve_dsn,
)


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.description = [("rock_code",), ("name",)]

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        if self.conn.error is not None:
            raise self.conn.error

    def fetchall(self):
        return self.conn.result

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeConnection:
    def __init__(self) -> None:
        self.closed = 0
        self.autocommit = True
        self.commits = 0
        self.rollbacks = 0
        self.executed: list[tuple] = []
        self.result: list[tuple] = []
        self.error: Exception | None = None

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = 1


@pytest.fixture()
def patched_execute_values(monkeypatch):
    import petro_import.db.batch_upsert as bu

    sent: list[tuple] = []

    def fake_execute_values(cursor, sql, rows, page_size=1000):
        cursor.conn.executed.append((sql, rows))
        if cursor.conn.error is not None:
            raise cursor.conn.error
        sent.append((sql, rows))

    monkeypatch.setattr(bu, "execute_values", fake_execute_values)
    return sent


def test_upsert_commits_each_call(patched_execute_values):
    conn = FakeConnection()
    store = PostgresRowStore(conn)
    rows = [{"rock_code": "I-0001", "name": "Granite"}, {"rock_code": "I-0002", "name": "Basalt"}]
    assert store.upsert("rocks", rows, on_conflict="rock_code") == 2
    assert conn.commits == 1
    sql, values = patched_execute_values[0]
    assert 'ON CONFLICT ("rock_code")' in sql
    assert values == [["I-0001", "Granite"], ["I-0002", "Basalt"]]


def test_upsert_failure_rolls_back_and_raises_store_error(patched_execute_values):
    conn = FakeConnection()
    conn.error = psycopg2.DataError("value too long for type character varying(50)")
    store = PostgresRowStore(conn)
    with pytest.raises(StoreError) as exc:
        store.upsert("rocks", [{"rock_code": "I-0001", "name": "x" * 80}], on_conflict="rock_code")
    assert not isinstance(exc.value, StoreUnavailableError)
    assert conn.rollbacks == 1
    assert conn.commits == 0


def test_lost_connection_is_unavailable(patched_execute_values):
    conn = FakeConnection()
    conn.error = psycopg2.InterfaceError("connection already closed")
    store = PostgresRowStore(conn)
    with pytest.raises(StoreUnavailableError):
        store.upsert("rocks", [{"rock_code": "I-0001", "name": "Granite"}], on_conflict="rock_code")


def test_closed_connection_is_unavailable(patched_execute_values):
    conn = FakeConnection()
    conn.error = psycopg2.OperationalError("server closed the connection unexpectedly")
    conn.closed = 2
    store = PostgresRowStore(conn)
    with pytest.raises(StoreUnavailableError):
        store.upsert("rocks", [{"rock_code": "I-0001", "name": "Granite"}], on_conflict="rock_code")


def test_upsert_empty_is_noop(patched_execute_values):
    conn = FakeConnection()
    assert PostgresRowStore(conn).upsert("rocks", [], on_conflict="rock_code") == 0
    assert conn.executed == []


def test_existing_codes_and_select():
    conn = FakeConnection()
    store = PostgresRowStore(conn)
    conn.result = [("I-0001",)]
    assert store.existing_codes("rocks", "rock_code", ["I-0001", "I-0002"]) == {"I-0001"}
    sql, params = conn.executed[-1]
    assert "ANY(%s)" in sql and params == (["I-0001", "I-0002"],)

    conn.result = [("I-0001", "Granite")]
    assert store.select("rocks", ["rock_code", "name"]) == [{"rock_code": "I-0001", "name": "Granite"}]
    assert store.existing_codes("rocks", "rock_code", []) == set()


def test_resolve_dsn_env_first(monkeypatch):
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    cfg = DatabaseConfig(host="db", port=6543, user="petro", password="pw", database="catalog")
    assert resolve_dsn(cfg) == "host=db port=6543 user=petro dbname=catalog password=pw"

    monkeypatch.setenv("PGHOST", "envhost")
    assert resolve_dsn(cfg).startswith("host=envhost port=6543")

    monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/d")
    assert resolve_dsn(cfg) == "postgresql://u@h/d"


def test_connect_store_unreachable(monkeypatch):
    def refuse(dsn):
        raise psycopg2.OperationalError("could not connect to server")

    monkeypatch.setattr(psycopg2, "connect", refuse)
    with pytest.raises(StoreUnavailableError):
        with connect_store(DatabaseConfig(dsn="host=nowhere")):
            pass


def test_connect_store_closes_connection(monkeypatch):
    conn = FakeConnection()
    monkeypatch.setattr(psycopg2, "connect", lambda dsn: conn)
    with connect_store(DatabaseConfig(dsn="host=db")) as store:
        assert store.connection is conn
        assert conn.autocommit is False
    assert conn.closed == 1

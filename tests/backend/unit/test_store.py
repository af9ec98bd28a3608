import pytest

from sundaycoffee.backend.exceptions import RecordStoreError, RecordStoreUnavailable
from sundaycoffee.backend.store import InMemoryRecordStore, PostgresRecordStore, create_store


def test_create_store_returns_postgres_store_when_database_url_present() -> None:
    store = create_store(database_url="postgresql://local")

    assert isinstance(store, PostgresRecordStore)


def test_create_store_returns_none_when_database_url_missing() -> None:
    assert create_store(database_url=None) is None


def test_in_memory_store_upserts_and_deletes() -> None:
    store = InMemoryRecordStore()

    store.save("Participant", "paul", {"roundsPaid": 1})
    store.save("Participant", "paul", {"roundsPaid": 2})

    assert store.fetch("Participant", "paul") == {"roundsPaid": 2}
    assert store.fetch("Participant", "tim") is None

    store.delete("Participant", "paul")
    store.delete("Participant", "paul")

    assert store.fetch("Participant", "paul") is None


def test_in_memory_store_hands_out_copies() -> None:
    store = InMemoryRecordStore()
    store.save("CoffeeRoundIndex", "coffee-round-index", {"roundIDs": ["a"]})

    fetched = store.fetch("CoffeeRoundIndex", "coffee-round-index")
    fetched["roundIDs"].append("b")

    assert store.fetch("CoffeeRoundIndex", "coffee-round-index") == {"roundIDs": ["a"]}


class _FakeCursor:
    def __init__(self, row=None, error: Exception | None = None) -> None:
        self.commands: list[tuple[str, tuple]] = []
        self.row = row
        self.error = error

    def execute(self, sql: str, params: tuple) -> None:
        if self.error is not None:
            raise self.error
        self.commands.append((sql, params))

    def fetchone(self):
        return self.row

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self.cursor_instance = cursor
        self.committed = False

    def cursor(self) -> _FakeCursor:
        return self.cursor_instance

    def commit(self) -> None:
        self.committed = True

    def __enter__(self) -> "_FakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


class _PostgresStoreWithFakeConnection(PostgresRecordStore):
    def __init__(self, row=None, error: Exception | None = None, connect_error: Exception | None = None) -> None:
        super().__init__(database_url="postgresql://local")
        self.fake_connection = _FakeConnection(_FakeCursor(row=row, error=error))
        self.connect_error = connect_error

    def _connect(self) -> _FakeConnection:
        if self.connect_error is not None:
            raise self.connect_error
        return self.fake_connection


def test_postgres_save_upserts_json_fields_and_commits() -> None:
    pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection()

    store.save("RosterState", "roster-state", {"cursor": 3, "lastUpdated": "2026-10-04T09:30:00+00:00"})

    commands = store.fake_connection.cursor_instance.commands
    assert store.fake_connection.committed is True
    assert len(commands) == 1
    assert "INSERT INTO records" in commands[0][0]
    assert "ON CONFLICT" in commands[0][0]
    assert commands[0][1][:3] == (
        "RosterState",
        "roster-state",
        '{"cursor": 3, "lastUpdated": "2026-10-04T09:30:00+00:00"}',
    )


def test_postgres_fetch_returns_fields_from_jsonb_or_text() -> None:
    pytest.importorskip("psycopg")

    as_dict = _PostgresStoreWithFakeConnection(row=({"cursor": 1},))
    as_text = _PostgresStoreWithFakeConnection(row=('{"cursor": 2}',))
    missing = _PostgresStoreWithFakeConnection(row=None)

    assert as_dict.fetch("RosterState", "roster-state") == {"cursor": 1}
    assert as_text.fetch("RosterState", "roster-state") == {"cursor": 2}
    assert missing.fetch("RosterState", "roster-state") is None
    assert as_dict.fake_connection.cursor_instance.commands[0][1] == ("RosterState", "roster-state")


def test_postgres_fetch_before_schema_exists_is_absent() -> None:
    psycopg = pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection(error=psycopg.errors.UndefinedTable("relation records does not exist"))

    assert store.fetch("Participant", "paul") is None


def test_postgres_delete_removes_by_key() -> None:
    pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection()

    store.delete("CoffeeRound", "R-1")

    sql, params = store.fake_connection.cursor_instance.commands[0]
    assert "DELETE FROM records" in sql
    assert params == ("CoffeeRound", "R-1")
    assert store.fake_connection.committed is True


def test_postgres_connection_failure_is_unavailable() -> None:
    psycopg = pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection(connect_error=psycopg.OperationalError("connection refused"))

    with pytest.raises(RecordStoreUnavailable):
        store.ping()
    with pytest.raises(RecordStoreUnavailable):
        store.fetch("Participant", "paul")


def test_postgres_other_driver_errors_are_record_store_errors() -> None:
    psycopg = pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection(error=psycopg.errors.UniqueViolation("duplicate"))

    with pytest.raises(RecordStoreError) as excinfo:
        store.save("CoffeeRound", "R-1", {})

    assert not isinstance(excinfo.value, RecordStoreUnavailable)


def test_postgres_apply_schema_creates_records_table() -> None:
    pytest.importorskip("psycopg")
    store = _PostgresStoreWithFakeConnection()

    store.apply_schema()

    [(sql, params)] = store.fake_connection.cursor_instance.commands
    assert "CREATE TABLE IF NOT EXISTS records" in sql
    assert "PRIMARY KEY (record_type, record_id)" in sql
    assert params == ()
    assert store.fake_connection.committed is True

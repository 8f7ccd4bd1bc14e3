"""End-to-end staging, history merge and promotion on SQLite."""

import json
import logging
import time

import pytest

from conftest import fetch_all
from recordstage.core.constants import DEFAULT_ANONYMIZE_RULES
from recordstage.core.enums import ColumnType, TableStatus
from recordstage.core.exceptions import MalformedRecordError
from recordstage.infrastructure.db.connection import DatabaseManager
from recordstage.infrastructure.db.dialect import PostgreSQLType, SQLiteType
from recordstage.infrastructure.storage.page_source import LocalPageSource
from recordstage.schemas.table_schema import ColumnSchema, TableSchema
from recordstage.services.etl_service import ETLService, TableRunResult
from recordstage.services.idmap_service import DatabaseKeyStore, IDMap
from recordstage.services.staging_service import StagingService

OWNER = "2b94c631-fca9-4892-a730-03ee529ffe2a"


@pytest.fixture
def run_tables(db, dbt, idmap, settings, write_pages, tmp_path):
    """Stage tables from freshly written pages; one directory per run."""
    runs = []

    def _run(pages_by_table, run_settings=None):
        directory = tmp_path / f"run{len(runs)}"
        for table_name, pages in pages_by_table.items():
            write_pages(directory, table_name, pages)
        # History timestamps have millisecond resolution on SQLite
        if runs:
            time.sleep(0.02)
        service = ETLService(db, dbt, LocalPageSource(directory), idmap, settings=run_settings or settings)
        results = service.run([TableSchema(table_name=name) for name in pages_by_table])
        runs.append(results)
        return results

    return _run


def history(db, table_name):
    rows = fetch_all(db, f"SELECT id, data FROM {table_name}_history ORDER BY updated")
    return [(row[0], json.loads(row[1]) if row[1] is not None else None) for row in rows]


def test_snapshot_history_and_promotion(db, run_tables):
    first = run_tables({"items": [[{"id": "a", "x": 1}]]})[0]

    assert first.status == TableStatus.COMPLETED
    assert first.stage.records_loaded == 1
    assert first.history_rows_appended == 1
    assert fetch_all(db, "SELECT id, x, tenant_id FROM items") == [("a", 1, 1)]

    second = run_tables({"items": [[{"id": "a", "x": 1}], [{"id": "a", "x": 2}]]})[0]

    assert second.stage.duplicates_replaced == 1
    assert second.history_rows_appended == 1
    assert fetch_all(db, "SELECT id, x FROM items") == [("a", 2)]
    assert history(db, "items") == [("a", {"id": "a", "x": 1}), ("a", {"id": "a", "x": 2})]

    third = run_tables({"items": [[{"id": "a", "x": 1}], [{"id": "a", "x": 2}]]})[0]

    assert third.history_rows_appended == 0
    assert len(history(db, "items")) == 2


def test_member_order_changes_are_not_history_changes(db, run_tables):
    run_tables({"items": [[{"id": "a", "x": 1, "y": 2}]]})
    result = run_tables({"items": [b'[{"y": 2, "x": 1, "id": "a"}]']})[0]

    assert result.history_rows_appended == 0
    assert len(history(db, "items")) == 1


def test_records_missing_from_snapshot_leave_history_alone(db, run_tables):
    run_tables({"items": [[{"id": "a"}, {"id": "b"}]]})
    result = run_tables({"items": [[{"id": "b"}]]})[0]

    assert result.history_rows_appended == 0
    assert fetch_all(db, "SELECT id FROM items") == [("b",)]
    assert sorted(row[0] for row in history(db, "items")) == ["a", "b"]


def test_envelope_pages_and_typed_columns(db, run_tables):
    page = {
        "items": [
            {"id": "i1", "holdingsRecordId": OWNER, "copies": 2, "price": 1.5,
             "active": True, "createdDate": "2023-01-02T03:04:05Z", "notes": ["n"]},
        ],
        "totalRecords": 1,
    }
    result = run_tables({"items": [page]})[0]

    assert [(c.column_name, c.column_type) for c in result.stage.columns] == [
        ("active", ColumnType.BOOLEAN),
        ("copies", ColumnType.BIGINT),
        ("created_date", ColumnType.TIMESTAMPTZ),
        ("holdings_record_id", ColumnType.ID),
        ("price", ColumnType.NUMERIC),
    ]
    rows = fetch_all(db, "SELECT sk, holdings_record_id_sk, holdings_record_id, copies, price FROM items")
    assert rows == [(1, 1, OWNER, 2, 1.5)]
    data = json.loads(fetch_all(db, "SELECT data FROM items")[0][0])
    assert list(data) == ["id", "active", "copies", "createdDate", "holdingsRecordId", "notes", "price"]


@pytest.fixture
def file_warehouse(settings, tmp_path):
    """A file-backed warehouse with a durable key store and small INSERT statements."""
    file_settings = settings.model_copy(update={
        "database_url": f"sqlite:///{tmp_path / 'warehouse.db'}",
        "insert_flush_threshold": 50,
    })
    manager = DatabaseManager(file_settings)
    manager.init_db()
    yield manager, file_settings, IDMap(DatabaseKeyStore(manager))
    manager.dispose()


def run_durable(file_warehouse, write_pages, directory, pages):
    db, file_settings, idmap = file_warehouse
    write_pages(directory, "items", pages)
    service = ETLService(db, SQLiteType(), LocalPageSource(directory), idmap, settings=file_settings)
    return service.run([TableSchema(table_name="items")])[0]


def test_durable_keys_are_written_with_the_load(file_warehouse, write_pages, tmp_path):
    db = file_warehouse[0]
    pages = [[{"id": "a"}, {"id": "b"}], [{"id": "c"}, {"id": "b", "x": 1}]]

    result = run_durable(file_warehouse, write_pages, tmp_path / "run0", pages)

    assert result.status == TableStatus.COMPLETED
    assert result.stage.statements_executed == 4
    assert result.stage.duplicates_replaced == 1
    assert fetch_all(db, "SELECT sk, id, x FROM items ORDER BY sk") == [(1, "a", None), (2, "b", 1), (3, "c", None)]
    assert fetch_all(db, "SELECT natural_id, sk FROM idmap ORDER BY sk") == [("a", 1), ("b", 2), ("c", 3)]


def test_durable_keys_from_a_failed_load_are_not_reassigned(file_warehouse, write_pages, tmp_path):
    db = file_warehouse[0]
    run_durable(file_warehouse, write_pages, tmp_path / "run0", [[{"id": "a"}]])

    failed = run_durable(file_warehouse, write_pages, tmp_path / "run1", [[{"id": "b"}, {"name": "no id"}]])

    assert failed.status == TableStatus.FAILED
    assert fetch_all(db, "SELECT id FROM items") == [("a",)]
    assert fetch_all(db, "SELECT natural_id, sk FROM idmap ORDER BY sk") == [("a", 1), ("b", 2)]

    time.sleep(0.02)
    run_durable(file_warehouse, write_pages, tmp_path / "run2", [[{"id": "c"}, {"id": "b"}]])

    assert fetch_all(db, "SELECT sk, id FROM items ORDER BY sk") == [(2, "b"), (3, "c")]


def test_surrogate_keys_survive_across_runs(db, run_tables):
    run_tables({"items": [[{"id": "a"}, {"id": "b"}]]})
    run_tables({"items": [[{"id": "c"}, {"id": "b"}]]})

    assert fetch_all(db, "SELECT sk, id FROM items ORDER BY sk") == [(2, "b"), (3, "c")]


def test_missing_page_ends_the_pass(db, dbt, idmap, settings, tmp_path, caplog):
    (tmp_path / "items_count.txt").write_text("3")
    (tmp_path / "items_0.json").write_text('[{"id": "a"}]')
    (tmp_path / "items_2.json").write_text('[{"id": "c"}]')
    staging = StagingService(db, dbt, LocalPageSource(tmp_path), idmap, settings=settings)

    with caplog.at_level(logging.WARNING):
        result = staging.stage_table(TableSchema(table_name="items"))

    assert result.page_count == 3
    assert result.records_loaded == 1
    assert fetch_all(db, "SELECT id FROM items_loading") == [("a",)]
    assert any("page 1 not found" in r.getMessage() for r in caplog.records)


def test_oversized_payloads_are_not_appended_to_history(db, run_tables, settings):
    small = settings.model_copy(update={"max_value_length": 10})
    result = run_tables({"items": [[{"id": "a", "x": 1}]]}, run_settings=small)[0]

    assert result.stage.warnings == 1
    assert result.history_rows_appended == 0
    assert fetch_all(db, "SELECT id, data FROM items") == [("a", None)]


def test_anonymization_during_load(db, run_tables, settings):
    with_rules = settings.model_copy(update={"anonymize": DEFAULT_ANONYMIZE_RULES})
    record = {"id": "u1", "username": "jdoe", "active": True, "personal": {"email": "j@example.org"}}
    run_tables({"user_users": [[record]]}, run_settings=with_rules)

    username, data = fetch_all(db, "SELECT username, data FROM user_users")[0]
    assert username == ""
    assert json.loads(data) == {"id": "u1", "active": True, "personal": {"email": ""}, "username": ""}


def test_failed_table_does_not_affect_others(db, run_tables):
    run_tables({"good": [[{"id": "g"}]], "bad": [[{"id": "b1"}]]})
    results = run_tables({"good": [[{"id": "g2"}]], "bad": [b'[{"id": "b2"}, 5]']})

    assert [r.status for r in results] == [TableStatus.COMPLETED, TableStatus.FAILED]
    assert isinstance(results[1].error, MalformedRecordError)
    assert fetch_all(db, "SELECT id FROM good") == [("g2",)]
    assert fetch_all(db, "SELECT id FROM bad") == [("b1",)]


def test_failure_during_load_keeps_live_table(db, run_tables):
    run_tables({"items": [[{"id": "a"}]]})
    result = run_tables({"items": [[{"id": "b"}, {"name": "no id"}]]})[0]

    assert result.status == TableStatus.FAILED
    assert fetch_all(db, "SELECT id FROM items") == [("a",)]


def test_skipped_tables(db, dbt, idmap, settings, tmp_path):
    service = ETLService(db, dbt, LocalPageSource(tmp_path), idmap, settings=settings)

    results = service.run([TableSchema(table_name="items", skip=True)])

    assert results[0].status == TableStatus.SKIPPED
    assert results[0].succeeded


def test_parallel_run_keeps_input_order(db, dbt, idmap, settings, tmp_path):
    parallel = settings.model_copy(update={"max_workers": 4})
    service = ETLService(db, dbt, LocalPageSource(tmp_path), idmap, settings=parallel)

    def fake_process(table):
        time.sleep(0.01 if table.table_name == "t0" else 0)
        return TableRunResult(table_name=table.table_name, status=TableStatus.COMPLETED)

    service.process_table = fake_process
    tables = [TableSchema(table_name=f"t{n}") for n in range(6)]

    assert [r.table_name for r in service.run(tables)] == [t.table_name for t in tables]


def test_loading_table_definition(db, idmap, settings, tmp_path):
    class RecordingConnection:
        def __init__(self):
            self.statements = []

        def exec(self, sql):
            self.statements.append(sql)
            return 0

    grants = settings.model_copy(update={"grant_select_to": "reporting"})
    staging = StagingService(db, PostgreSQLType(), LocalPageSource(tmp_path), idmap, settings=grants)
    table = TableSchema(
        table_name="items",
        module_name="mod-inventory",
        source_path="/inventory/items",
        columns=[ColumnSchema("owner_id", "ownerId", ColumnType.ID)],
    )
    conn = RecordingConnection()

    staging.create_loading_table(conn, table)

    assert conn.statements == [
        "DROP TABLE IF EXISTS items_loading;",
        "CREATE TABLE items_loading (\n"
        "    sk BIGINT NOT NULL,\n"
        "    id VARCHAR(65535) NOT NULL,\n"
        '    "owner_id_sk" BIGINT,\n'
        '    "owner_id" VARCHAR(36),\n'
        "    data JSON,\n"
        "    tenant_id SMALLINT NOT NULL,\n"
        "    PRIMARY KEY (sk),\n"
        "    UNIQUE (id)\n"
        ");",
        "COMMENT ON TABLE items_loading IS '/inventory/items in mod-inventory';",
        "GRANT SELECT ON items_loading TO reporting;",
    ]

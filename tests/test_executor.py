"""End-to-end ingestion tests against SQLite."""
from __future__ import annotations

from datetime import datetime

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from SheetForge.config import IngestPolicy
from SheetForge.errors import ConflictError, EmptyInputError, InsertionError, ProvisioningError
from SheetForge.executor import Ingestor, ingest_file, ingest_records
from SheetForge.planner import PlanOutcome
from SheetForge.store import StoreSession


def _seed(store, table: str, rows: int = 3) -> None:
    with store.engine.begin() as conn:
        conn.execute(sa.text(f"CREATE TABLE {table} (legacy TEXT)"))
        for i in range(rows):
            conn.execute(sa.text(f"INSERT INTO {table} (legacy) VALUES (:v)"), {"v": f"old-{i}"})


def _columns(store, table: str) -> list:
    return [c["name"] for c in sa.inspect(store.engine).get_columns(table)]


def test_sparse_row_is_rejected(store, records_factory) -> None:
    """Row 7 carries 2 of 10 fields and is dropped; the other nine land."""
    records = records_factory(10, 10, sparse_rows={6})

    report = ingest_records(store, "sales", False, records)

    assert report.rows == 9
    assert report.rejected_rows == 1
    assert report.columns == tuple(f"field_{i}" for i in range(10))
    assert report.outcome is PlanOutcome.CREATE_NEW
    assert report.message == "9 rows inserted into sales"
    assert store.row_count("sales") == 9


def test_existing_table_without_overwrite_conflicts(store, records_factory) -> None:
    _seed(store, "sales")

    with pytest.raises(ConflictError) as excinfo:
        ingest_records(store, "sales", False, records_factory())

    assert excinfo.value.table_name == "sales"
    assert store.row_count("sales") == 3
    assert _columns(store, "sales") == ["legacy"]


def test_conflict_is_raised_before_reading_input(store) -> None:
    """An empty file against an existing table still reports the conflict."""
    _seed(store, "sales")

    with pytest.raises(ConflictError):
        ingest_records(store, "sales", False, [])


def test_force_overwrite_replaces_table(store, records_factory) -> None:
    _seed(store, "sales", rows=5)

    report = ingest_records(store, "sales", True, records_factory(4, 3))

    assert report.outcome is PlanOutcome.OVERWRITE
    assert report.message == "Existing table overwritten. 4 rows inserted into sales"
    assert _columns(store, "sales") == ["field_0", "field_1", "field_2"]
    with store.engine.connect() as conn:
        values = conn.execute(sa.text("SELECT field_0 FROM sales ORDER BY field_0")).scalars().all()
    assert values == [0, 10, 20, 30]


def test_force_overwrite_on_missing_table_creates(store, records_factory) -> None:
    report = ingest_records(store, "fresh", True, records_factory(2, 2))

    assert report.outcome is PlanOutcome.CREATE_NEW
    assert store.row_count("fresh") == 2


def test_table_name_is_normalized_and_defaulted(store, records_factory) -> None:
    named = ingest_records(store, "Quarterly Sales", False, records_factory(1, 2))
    unnamed = ingest_records(store, None, False, records_factory(1, 2))

    assert named.table_name == "quarterly_sales"
    assert unnamed.table_name == "excel_data"
    assert store.has_table("quarterly_sales")
    assert store.has_table("excel_data")


def test_empty_input_fails_before_any_ddl(store) -> None:
    with pytest.raises(EmptyInputError):
        ingest_records(store, "blank", False, [{"a": None, "b": ""}, {}])

    assert store.has_table("blank") is False


def test_empty_input_with_overwrite_keeps_existing_table(store) -> None:
    _seed(store, "sales")

    with pytest.raises(EmptyInputError):
        ingest_records(store, "sales", True, [{"a": None}])

    assert store.row_count("sales") == 3


def test_sample_is_first_row_with_data(store) -> None:
    records = [
        {"Id": None, "Amount": None, "Paid": None},
        {"Id": 1, "Amount": 2.5, "Paid": True},
        {"Id": 2, "Amount": 3.0, "Paid": False},
    ]

    report = ingest_records(store, "payments", False, records)

    assert report.rows == 2
    assert report.rejected_rows == 1
    types = {c["name"]: str(c["type"]) for c in sa.inspect(store.engine).get_columns("payments")}
    assert types == {"id": "INTEGER", "amount": "NUMERIC", "paid": "BOOLEAN"}


def test_timestamp_values_round_trip(store) -> None:
    taken = datetime(2024, 3, 9, 14, 5)
    ingest_records(store, "events", False, [{"Name": "launch", "At": taken}])

    with store.engine.connect() as conn:
        row = conn.execute(sa.select(sa.Table("events", sa.MetaData(), autoload_with=conn))).one()
    assert row.at == taken


def test_missing_keys_insert_as_null(store) -> None:
    records = [
        {"A": 1, "B": 2, "C": 3, "D": 4, "E": 5},
        {"A": 6, "B": 7, "C": 8},
    ]

    report = ingest_records(store, "partial", False, records)

    assert report.rows == 2
    with store.engine.connect() as conn:
        rows = conn.execute(sa.text("SELECT a, d, e FROM partial ORDER BY a")).all()
    assert rows == [(1, 4, 5), (6, None, None)]


def test_insertion_failure_keeps_earlier_rows_by_default(store) -> None:
    """Without atomic mode the rows before the failing row stay persisted."""
    records = [
        {"Name": "a", "Flag": True},
        {"Name": "b", "Flag": False},
        {"Name": "c", "Flag": "maybe"},
        {"Name": "d", "Flag": True},
    ]

    with pytest.raises(InsertionError) as excinfo:
        ingest_records(store, "flags", False, records)

    assert excinfo.value.row_index == 2
    assert excinfo.value.inserted == 2
    assert store.row_count("flags") == 2


def test_atomic_insertion_failure_leaves_no_table(store) -> None:
    records = [
        {"Name": "a", "Flag": True},
        {"Name": "b", "Flag": "maybe"},
    ]

    with pytest.raises(InsertionError):
        ingest_records(store, "flags", False, records, IngestPolicy(atomic=True))

    assert store.has_table("flags") is False


def test_atomic_success_commits(store, records_factory) -> None:
    report = ingest_records(store, "sales", False, records_factory(5, 4), IngestPolicy(atomic=True))

    assert report.rows == 5
    assert store.row_count("sales") == 5


def test_create_failure_is_provisioning_error(store, records_factory, monkeypatch) -> None:
    def fail_create(self, schema):
        raise OperationalError("CREATE TABLE", {}, Exception("permission denied"))

    monkeypatch.setattr(StoreSession, "create_table", fail_create)

    with pytest.raises(ProvisioningError) as excinfo:
        ingest_records(store, "sales", False, records_factory())

    assert excinfo.value.table_name == "sales"
    assert store.has_table("sales") is False


def test_drop_failure_is_provisioning_error(store, records_factory, monkeypatch) -> None:
    _seed(store, "sales")

    def fail_drop(self, table):
        raise OperationalError("DROP TABLE", {}, Exception("locked"))

    monkeypatch.setattr(StoreSession, "drop_table", fail_drop)

    with pytest.raises(ProvisioningError, match="Failed to drop existing table 'sales'"):
        ingest_records(store, "sales", True, records_factory())

    assert store.row_count("sales") == 3


def test_custom_fill_ratio(store, records_factory) -> None:
    records = records_factory(3, 10, sparse_rows={1})

    report = Ingestor(store, IngestPolicy(min_fill_ratio=0.1)).ingest("loose", False, records)

    assert report.rows == 3
    assert report.rejected_rows == 0


def test_serialized_runs_share_store(store, records_factory) -> None:
    ingestor = Ingestor(store, IngestPolicy(serialize_by_table=True))

    first = ingestor.ingest("sales", False, records_factory(2, 2))
    with pytest.raises(ConflictError):
        ingestor.ingest("sales", False, records_factory(2, 2))

    assert first.rows == 2


def test_ingest_file_reads_csv(store, tmp_path) -> None:
    path = tmp_path / "sales.csv"
    path.write_text("Region,Units Sold,Unit Price,Active\nNorth,10,2.5,True\nSouth,7,3.0,False\n")

    report = ingest_file(store, path, "Sales")

    assert report.table_name == "sales"
    assert report.columns == ("region", "units_sold", "unit_price", "active")
    assert store.row_count("sales") == 2


def test_atomic_overwrite_failure_keeps_existing_table(store) -> None:
    """A failed atomic overwrite restores the dropped table and its rows."""
    _seed(store, "sales")
    records = [
        {"Name": "a", "Flag": True},
        {"Name": "b", "Flag": "maybe"},
    ]

    with pytest.raises(InsertionError):
        ingest_records(store, "sales", True, records, IngestPolicy(atomic=True))

    assert _columns(store, "sales") == ["legacy"]
    assert store.row_count("sales") == 3


def test_ingest_file_checks_conflict_before_reading(store, tmp_path) -> None:
    """An unreadable workbook aimed at an existing table still conflicts."""
    _seed(store, "sales")
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a workbook")

    with pytest.raises(ConflictError):
        ingest_file(store, path, "sales")

    assert store.row_count("sales") == 3

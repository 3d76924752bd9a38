"""Shared pytest fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from SheetForge.config import Settings  # noqa: E402
from SheetForge.store import TableStore  # noqa: E402


@pytest.fixture
def store(tmp_path: Path):
    """File-backed SQLite store, fresh per test."""
    table_store = TableStore.from_uri(
        f"sqlite:///{tmp_path / 'ingest.db'}",
        connect_args={"check_same_thread": False},
    )
    yield table_store
    table_store.dispose()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_uri=f"sqlite:///{tmp_path / 'ingest.db'}",
        upload_dir=tmp_path / "uploads",
    )


def make_records(n_rows: int = 10, n_cols: int = 10, sparse_rows=()):
    """Rows with ``n_cols`` headers; rows listed in ``sparse_rows`` keep only 2 values."""
    headers = [f"Field {i}" for i in range(n_cols)]
    records = []
    for r in range(n_rows):
        row = {h: (r * 10 + i if i % 2 == 0 else f"v{r}-{i}") for i, h in enumerate(headers)}
        if r in sparse_rows:
            row = {h: (v if i < 2 else None) for i, (h, v) in enumerate(row.items())}
        records.append(row)
    return records


@pytest.fixture
def records_factory():
    return make_records

"""Spreadsheet-to-table ingestion with inferred schemas."""
from __future__ import annotations

from .config import IngestPolicy, Settings, load_settings
from .cleaner import sanitize_column, sanitize_table_name, resolve_column_names, is_blank
from .registry import ColumnType, TypeRegistry, infer_column_type
from .quality import accept_row, RowQualityFilter
from .planner import (
    ColumnSpec,
    PlanOutcome,
    TableSchema,
    plan_table,
    find_sample_row,
    build_schema,
)
from .store import TableStore, StoreSession, render_create_table
from .diagnostics import IngestionReport
from .errors import (
    IngestError,
    ValidationError,
    ConflictError,
    EmptyInputError,
    ProvisioningError,
    InsertionError,
)
from .io import read_sheet, is_allowed_file, ALLOWED_EXTENSIONS
from .executor import Ingestor, ingest_records, ingest_file

__all__ = [
    "IngestPolicy",
    "Settings",
    "load_settings",
    "sanitize_column",
    "sanitize_table_name",
    "resolve_column_names",
    "is_blank",
    "ColumnType",
    "TypeRegistry",
    "infer_column_type",
    "accept_row",
    "RowQualityFilter",
    "ColumnSpec",
    "PlanOutcome",
    "TableSchema",
    "plan_table",
    "find_sample_row",
    "build_schema",
    "TableStore",
    "StoreSession",
    "render_create_table",
    "IngestionReport",
    "IngestError",
    "ValidationError",
    "ConflictError",
    "EmptyInputError",
    "ProvisioningError",
    "InsertionError",
    "read_sheet",
    "is_allowed_file",
    "ALLOWED_EXTENSIONS",
    "Ingestor",
    "ingest_records",
    "ingest_file",
]

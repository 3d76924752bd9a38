"""Ingestion pipeline: existence check -> plan -> provision -> filter -> insert -> report."""
from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from .cleaner import sanitize_table_name
from .config import IngestPolicy
from .diagnostics import IngestionReport
from .errors import ConflictError, EmptyInputError, InsertionError, ProvisioningError
from .io import read_sheet
from .logger import log_call, log_json, log_records, log_string
from .planner import PlanOutcome, TableSchema, build_schema, find_sample_row, plan_table
from .quality import RowQualityFilter
from .store import StoreSession, TableStore, render_create_table

logger = logging.getLogger(__name__)

# Value errors raised by SQLAlchemy type processors (e.g. non-boolean into BOOLEAN)
# surface wrapped in StatementError, which is a SQLAlchemyError.
_STORE_ERRORS = (SQLAlchemyError, TypeError, ValueError)


class Ingestor:
    """Runs one ingestion per call against an injected TableStore."""

    def __init__(self, store: TableStore, policy: Optional[IngestPolicy] = None):
        self.store = store
        self.policy = policy or IngestPolicy()

    @log_call
    def ingest(
        self,
        table_name: Optional[str],
        force_overwrite: bool,
        records: Sequence[Mapping[str, Any]],
    ) -> IngestionReport:
        """Materialize records as a table.

        Raises:
            ConflictError: table exists and force_overwrite is false; nothing is touched.
            EmptyInputError: no record has any non-blank value; raised before any DDL.
            ProvisioningError: DROP or CREATE failed; no row was inserted.
            InsertionError: a row failed to insert; the run stops there.
        """
        return self._ingest(table_name, force_overwrite, lambda: records)

    @log_call
    def ingest_file(
        self,
        table_name: Optional[str],
        force_overwrite: bool,
        path: Union[Path, str],
    ) -> IngestionReport:
        """Like ``ingest``, reading ``path`` only once the table conflict check has passed.

        An unreadable file aimed at an existing table still raises ConflictError.
        """
        return self._ingest(table_name, force_overwrite, lambda: read_sheet(path))

    def _ingest(
        self,
        table_name: Optional[str],
        force_overwrite: bool,
        load_records: Callable[[], Sequence[Mapping[str, Any]]],
    ) -> IngestionReport:
        name = sanitize_table_name(table_name, self.policy.default_table)
        with ExitStack() as stack:
            if self.policy.serialize_by_table:
                stack.enter_context(self.store.table_lock(name))
            session = stack.enter_context(self.store.session())
            return self._run(session, name, force_overwrite, load_records)

    def _run(
        self,
        session: StoreSession,
        name: str,
        force_overwrite: bool,
        load_records: Callable[[], Sequence[Mapping[str, Any]]],
    ) -> IngestionReport:
        try:
            exists = session.has_table(name)
        except SQLAlchemyError as e:
            raise ProvisioningError(name, f"Failed to check table '{name}': {e}") from e

        outcome = plan_table(exists, force_overwrite)
        if outcome is PlanOutcome.REJECT_EXISTING:
            logger.info("Table '%s' exists and overwrite not requested", name)
            raise ConflictError(name)

        records = load_records()
        sample = find_sample_row(records)
        if sample is None:
            raise EmptyInputError("No valid rows with data found in the Excel file")

        log_records(f"input_{name}", records)
        schema = build_schema(name, sample, self.store.registry, self.policy.column_fallback)
        log_string(f"ddl_{name}", render_create_table(schema, session.dialect, self.store.registry))

        if not self.policy.atomic:
            self._provision(session, schema, outcome)
            inserted, rejected = self._load(session, schema, records, len(sample))
        else:
            try:
                with session.transaction():
                    self._provision(session, schema, outcome)
                    inserted, rejected = self._load(session, schema, records, len(sample))
            except (ProvisioningError, InsertionError):
                # Stores without transactional DDL keep the new table after the
                # rollback. SQLite stores from TableStore.from_uri roll DDL back.
                if outcome is PlanOutcome.CREATE_NEW:
                    self._discard(session, name)
                raise

        report = IngestionReport(
            table_name=name,
            rows=inserted,
            rejected_rows=rejected,
            columns=tuple(schema.names),
            outcome=outcome,
        )
        logger.info(report.message)
        log_json(f"report_{name}", report.to_dict())
        return report

    def _provision(self, session: StoreSession, schema: TableSchema, outcome: PlanOutcome) -> None:
        name = schema.table_name
        if outcome is PlanOutcome.OVERWRITE:
            try:
                session.drop_table(name)
            except SQLAlchemyError as e:
                logger.error("Error dropping table %s: %s", name, e)
                raise ProvisioningError(name, f"Failed to drop existing table '{name}'") from e
        try:
            session.create_table(schema)
        except SQLAlchemyError as e:
            logger.error("Error creating table %s: %s", name, e)
            raise ProvisioningError(name, f"Failed to create table '{name}': {e}") from e

    def _load(
        self,
        session: StoreSession,
        schema: TableSchema,
        records: Sequence[Mapping[str, Any]],
        total_columns: int,
    ) -> tuple:
        """Insert accepted rows one at a time, in file order."""
        row_filter = RowQualityFilter(total_columns, self.policy.min_fill_ratio)
        inserted = 0
        for index, record in enumerate(records):
            if not row_filter(record):
                continue
            try:
                session.insert_row(schema.table_name, schema.remap(record))
            except _STORE_ERRORS as e:
                logger.error("Insert failed at row %d of %s: %s", index, schema.table_name, e)
                raise InsertionError(
                    schema.table_name,
                    index,
                    inserted,
                    f"Failed to insert row {index + 1} into '{schema.table_name}': {e}",
                ) from e
            inserted += 1
        return inserted, row_filter.rejected

    def _discard(self, session: StoreSession, name: str) -> None:
        """Remove a table left behind by a rolled-back atomic run."""
        try:
            session.drop_table(name)
        except SQLAlchemyError:
            logger.exception("Could not remove partial table %s", name)


def ingest_records(
    store: TableStore,
    table_name: Optional[str],
    force_overwrite: bool,
    records: Sequence[Mapping[str, Any]],
    policy: Optional[IngestPolicy] = None,
) -> IngestionReport:
    return Ingestor(store, policy).ingest(table_name, force_overwrite, records)


def ingest_file(
    store: TableStore,
    path: Union[Path, str],
    table_name: Optional[str] = None,
    force_overwrite: bool = False,
    policy: Optional[IngestPolicy] = None,
) -> IngestionReport:
    """Read the first sheet of ``path`` and ingest it."""
    return Ingestor(store, policy).ingest_file(table_name, force_overwrite, path)

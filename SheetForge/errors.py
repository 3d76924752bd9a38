"""Ingestion error taxonomy."""
from __future__ import annotations


class IngestError(Exception):
    pass


class ValidationError(IngestError):
    """Request cannot be processed as given (missing file, bad extension)."""


class ConflictError(IngestError):
    """Target table exists and overwrite was not requested."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"Table '{table_name}' already exists in the database")


class EmptyInputError(IngestError):
    pass


class ProvisioningError(IngestError):
    """DROP or CREATE for the target table failed."""

    def __init__(self, table_name: str, message: str):
        self.table_name = table_name
        super().__init__(message)


class InsertionError(IngestError):
    """A row failed to insert; the run stops at that row."""

    def __init__(self, table_name: str, row_index: int, inserted: int, message: str):
        self.table_name = table_name
        self.row_index = row_index
        self.inserted = inserted
        super().__init__(message)

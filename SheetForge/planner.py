"""Schema planning: sample selection, table schema, create/reject/overwrite decision."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .cleaner import is_blank, resolve_column_names
from .registry import ColumnType, TypeRegistry

RawRecord = Mapping[str, Any]


class PlanOutcome(str, enum.Enum):
    CREATE_NEW = "create_new"
    REJECT_EXISTING = "reject_existing"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class ColumnSpec:
    source: str
    name: str
    column_type: ColumnType


@dataclass(frozen=True)
class TableSchema:
    """Ordered column definitions bound to a table name."""
    table_name: str
    columns: Tuple[ColumnSpec, ...]

    @property
    def names(self) -> list:
        return [c.name for c in self.columns]

    @property
    def sources(self) -> list:
        return [c.source for c in self.columns]

    @property
    def types(self) -> Dict[str, ColumnType]:
        return {c.name: c.column_type for c in self.columns}

    def remap(self, record: RawRecord) -> Dict[str, Any]:
        """Re-key a raw record by sanitized names in schema order; missing keys become None."""
        return {c.name: record.get(c.source) for c in self.columns}


def plan_table(exists: bool, force_overwrite: bool) -> PlanOutcome:
    if not exists:
        return PlanOutcome.CREATE_NEW
    return PlanOutcome.OVERWRITE if force_overwrite else PlanOutcome.REJECT_EXISTING


def find_sample_row(records: Iterable[RawRecord]) -> Optional[RawRecord]:
    """First record carrying at least one non-blank value."""
    for row in records:
        if row and any(not is_blank(v) for v in row.values()):
            return row
    return None


def build_schema(
    table_name: str,
    sample: RawRecord,
    registry: Optional[TypeRegistry] = None,
    fallback: str = "col_",
) -> TableSchema:
    """Derive the table schema from the sample row's keys and values, in key order."""
    registry = registry or TypeRegistry.default()
    sources: Sequence[str] = list(sample.keys())
    names = resolve_column_names(sources, fallback=fallback)
    columns = tuple(
        ColumnSpec(source=src, name=name, column_type=registry.infer(sample[src]))
        for src, name in zip(sources, names)
    )
    return TableSchema(table_name=table_name, columns=columns)

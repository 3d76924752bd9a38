"""Ingestion report container."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .planner import PlanOutcome


def outcome_message(outcome: PlanOutcome, rows: int, table_name: str) -> str:
    msg = f"{rows} rows inserted into {table_name}"
    if outcome is PlanOutcome.OVERWRITE:
        return f"Existing table overwritten. {msg}"
    return msg


@dataclass(frozen=True)
class IngestionReport:
    table_name: str
    rows: int
    rejected_rows: int
    columns: Tuple[str, ...] = field(default_factory=tuple)
    outcome: PlanOutcome = PlanOutcome.CREATE_NEW

    @property
    def message(self) -> str:
        return outcome_message(self.outcome, self.rows, self.table_name)

    def to_dict(self) -> Dict[str, Any]:
        """Success payload for the HTTP surface."""
        return {
            "success": True,
            "message": self.message,
            "tableName": self.table_name,
            "rows": self.rows,
            "columns": list(self.columns),
            "rejectedRows": self.rejected_rows,
        }

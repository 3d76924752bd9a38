"""Row quality filter: reject records too sparse to persist."""
from __future__ import annotations

from typing import Any, Mapping

from .cleaner import is_blank

MIN_FILL_RATIO = 0.6


def count_filled(row: Mapping[str, Any]) -> int:
    return sum(1 for v in row.values() if not is_blank(v))


def accept_row(row: Mapping[str, Any], total_columns: int, min_fill_ratio: float = MIN_FILL_RATIO) -> bool:
    """Accept when filled values / total_columns reaches min_fill_ratio.

    ``total_columns`` is fixed for the whole file (the sample row's width), so
    rows with extra or missing keys are still measured against it.
    """
    if total_columns <= 0:
        raise ValueError("total_columns must be positive")
    return count_filled(row) / total_columns >= min_fill_ratio


class RowQualityFilter:
    """Stateful wrapper around accept_row keeping accepted/rejected tallies."""

    def __init__(self, total_columns: int, min_fill_ratio: float = MIN_FILL_RATIO):
        if total_columns <= 0:
            raise ValueError("total_columns must be positive")
        self.total_columns = total_columns
        self.min_fill_ratio = min_fill_ratio
        self.accepted = 0
        self.rejected = 0

    def __call__(self, row: Mapping[str, Any]) -> bool:
        ok = accept_row(row, self.total_columns, self.min_fill_ratio)
        if ok:
            self.accepted += 1
        else:
            self.rejected += 1
        return ok

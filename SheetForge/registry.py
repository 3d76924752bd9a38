"""Column type inference and the ColumnType -> SQL type registry."""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict

import numpy as np
from sqlalchemy import Boolean, DateTime, Integer, Numeric, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeEngine


class ColumnType(str, enum.Enum):
    INTEGER = "INTEGER"
    NUMERIC = "NUMERIC"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    TEXT = "TEXT"


def _is_whole(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite() and value == value.to_integral_value()
    return math.isfinite(value) and float(value).is_integer()


def infer_column_type(value: Any) -> ColumnType:
    """Map one sample value to a ColumnType.

    Booleans are checked first because Python's bool is an int subclass; a
    boolean sample is never treated as a number.
    """
    if isinstance(value, (bool, np.bool_)):
        return ColumnType.BOOLEAN
    if isinstance(value, (int, np.integer)):
        return ColumnType.INTEGER
    if isinstance(value, (float, np.floating, Decimal)):
        if isinstance(value, (float, np.floating)) and math.isnan(value):
            return ColumnType.TEXT
        return ColumnType.INTEGER if _is_whole(value) else ColumnType.NUMERIC
    if isinstance(value, (datetime, date, np.datetime64)):
        return ColumnType.TIMESTAMP
    return ColumnType.TEXT


@dataclass
class TypeRegistry:
    _sql_types: Dict[ColumnType, Callable[[], TypeEngine]] = field(default_factory=dict)

    def register(self, column_type: ColumnType, factory: Callable[[], TypeEngine]) -> None:
        self._sql_types[column_type] = factory

    def resolve(self, column_type: ColumnType) -> TypeEngine:
        return self._sql_types[column_type]()

    def render_sql(self, column_type: ColumnType, dialect: Dialect) -> str:
        """SQL type name as the given dialect spells it."""
        return self.resolve(column_type).compile(dialect=dialect)

    def infer(self, value: Any) -> ColumnType:
        return infer_column_type(value)

    @classmethod
    def default(cls) -> "TypeRegistry":
        reg = cls()
        reg.register(ColumnType.INTEGER, Integer)
        reg.register(ColumnType.NUMERIC, lambda: Numeric(asdecimal=False))
        reg.register(ColumnType.BOOLEAN, Boolean)
        reg.register(ColumnType.TIMESTAMP, DateTime)
        reg.register(ColumnType.TEXT, Text)
        return reg

"""Header and table-name sanitization."""
from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .config import DEFAULT_TABLE

_WHITESPACE = re.compile(r"\s+")
_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_column(header: Any) -> str:
    """Normalize a raw header into a lowercase ``[a-z0-9_]`` identifier.

    Trims, collapses each whitespace run to one underscore, drops every other
    character outside ASCII letters/digits/underscore, then lowercases. The
    result may be empty for purely symbolic headers.
    """
    s = header if isinstance(header, str) else str(header)
    s = _WHITESPACE.sub("_", s.strip())
    s = _NON_IDENTIFIER.sub("", s)
    return s.lower()


def sanitize_table_name(requested: Optional[str], default: str = DEFAULT_TABLE) -> str:
    """Lowercase the requested table name and collapse whitespace runs to ``_``."""
    if not requested:
        return default
    return _WHITESPACE.sub("_", requested.lower())


def resolve_column_names(headers: Iterable[Any], fallback: str = "col_") -> List[str]:
    """Sanitize headers into usable, unique column names.

    Empty results become ``<fallback><position>`` (1-based); repeats get a
    numeric suffix in first-seen order: ``total``, ``total_1``, ``total_2``.
    """
    seen: Dict[str, int] = {}
    used: set = set()
    clean: List[str] = []
    for pos, header in enumerate(headers, start=1):
        c = sanitize_column(header) or f"{fallback}{pos}"
        name, i = c, seen.get(c, 0)
        while name in used:
            i += 1
            name = f"{c}_{i}"
        seen[c] = i
        used.add(name)
        clean.append(name)
    return clean


def is_blank(value: Any) -> bool:
    """True for None, empty string, float NaN and NaT."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, float):
        return math.isnan(value)
    return value is pd.NaT

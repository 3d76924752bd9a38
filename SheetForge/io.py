from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import pandas as pd

from .errors import ValidationError
from .logger import log_call

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({"xlsx", "xls", "csv"})


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def is_allowed_file(filename: str, allowed=ALLOWED_EXTENSIONS) -> bool:
    """Extension check only; content is not sniffed."""
    return bool(filename) and file_extension(filename) in allowed


def _to_python(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, np.datetime64):
        return None if np.isnat(value) else pd.Timestamp(value).to_pydatetime()
    return value


def normalize_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as plain-Python records keyed by the header text."""
    headers = [str(c) for c in df.columns]
    return [
        {h: _to_python(v) for h, v in zip(headers, row)}
        for row in df.itertuples(index=False, name=None)
    ]


def _read_csv(path: Path) -> pd.DataFrame:
    try:
        df = pd.read_csv(path, encoding="utf-8", on_bad_lines="warn", engine="python", compression="infer")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        try:
            return pd.read_csv(path, sep=None, engine="python", encoding="utf-8", on_bad_lines="warn")
        except (pd.errors.ParserError, UnicodeDecodeError) as e2:
            raise ValidationError(f"Failed to read CSV {path.name}: {e}") from e2
    if df.shape[1] == 1:
        try:
            df_retry = pd.read_csv(path, sep=None, engine="python", encoding="utf-8", on_bad_lines="warn")
            if df_retry.shape[1] > 1:
                df = df_retry
        except (pd.errors.ParserError, UnicodeDecodeError):
            logger.warning("CSV delimiter sniff retry failed for %s", path.name)
    return df


def read_frame(source: Union[Path, str]) -> pd.DataFrame:
    """Read the first sheet of a csv/xlsx/xls file into a DataFrame (first row is the header)."""
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")

    suffix = file_extension(path.name)
    if suffix == "csv":
        try:
            return _read_csv(path)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
    if suffix in ("xlsx", "xls"):
        engine = "openpyxl" if suffix == "xlsx" else None
        try:
            return pd.read_excel(path, sheet_name=0, engine=engine)
        except ImportError:
            raise
        except Exception as e:
            raise ValidationError(f"Failed to read Excel {path.name}: {e}") from e
    raise ValidationError(f"Unsupported file format: .{suffix}")


@log_call
def read_sheet(source: Union[Path, str, pd.DataFrame]) -> List[Dict[str, Any]]:
    """Parse a spreadsheet into raw records. Multiple sheets are ignored."""
    df = source.copy() if isinstance(source, pd.DataFrame) else read_frame(source)
    records = normalize_records(df)
    logger.info("Read %d rows x %d columns", len(records), df.shape[1])
    return records

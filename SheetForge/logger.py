"""
Opt-in call + snapshot trace logger with 10-min file bucketing.

Operational messages go through ``logging.getLogger(__name__)`` in each module;
this module only writes the detailed trace files when enabled via the
``logging`` section of config.yml or ``SHEETFORGE_LOGGING=true``.
"""
from __future__ import annotations

import inspect
import json
import os
import sys
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Iterable, Mapping

from sqlalchemy.engine import Engine

from .config import read_config_file

# ===================== CONFIG =====================

_warned: set = set()


def _print_once(msg: str, flag: str) -> None:
    """Print a warning to stderr once per flag type (config/logfile)."""
    if flag not in _warned:
        print(msg, file=sys.stderr)
        _warned.add(flag)


def load_config() -> dict:
    """Load trace config from config.yml, with safe defaults."""
    defaults = {
        "enabled": False,
        "dir": "log",
        "max_repr_len": 2000,
        "bucket_minutes": 10,
    }
    try:
        user_config = read_config_file()
    except Exception as e:
        _print_once(f"[logger] failed to load config.yml: {e} (using defaults)", "config")
        return defaults
    section = user_config.get("logging") if isinstance(user_config, dict) else None
    if section:
        defaults.update(section)
    return defaults


_LOG_CONFIG = load_config()

LOG_DIR = Path.cwd() / _LOG_CONFIG.get("dir", "log")
SEP = "-" * 42
MAX_REPR_LEN = _LOG_CONFIG.get("max_repr_len", 2000)
BUCKET_MINUTES = _LOG_CONFIG.get("bucket_minutes", 10)

# Environment variable override
ENV_LOGGING = os.getenv("SHEETFORGE_LOGGING")
if ENV_LOGGING is not None:
    ENABLE_LOGGING = ENV_LOGGING.lower() == "true"
else:
    ENABLE_LOGGING = bool(_LOG_CONFIG.get("enabled", False))

# ===================== CORE =====================


def _bucketed_filename() -> Path:
    now = datetime.now()
    minute = (now.minute // BUCKET_MINUTES) * BUCKET_MINUTES
    ts = now.replace(minute=minute, second=0).strftime("%d%m%Y-%H%M")
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR / f"log_{ts}.txt"


def _safe_str(obj: Any, maxlen: int = MAX_REPR_LEN) -> str:
    if obj is None:
        return "None"

    if isinstance(obj, (str, int, float, bool)):
        return str(obj)

    if isinstance(obj, bytes):
        s = obj[:maxlen].hex()
        return s + ("..." if len(obj) > maxlen else "")

    if isinstance(obj, list) and obj and all(isinstance(r, Mapping) for r in obj):
        return f"Records(len={len(obj)}, keys={list(obj[0].keys())})"

    if isinstance(obj, Engine):
        return f"SQLAlchemyEngine(url={obj.url!r})"

    try:
        s = repr(obj)
        return s[:maxlen] + ("..." if len(s) > maxlen else "")
    except Exception:
        return f"<unserializable {type(obj).__name__}>"


def _append(lines: Iterable[str]) -> None:
    try:
        fname = _bucketed_filename()
        with fname.open("a", encoding="utf-8") as f:
            for line in lines:
                f.write(line)
    except OSError as e:
        _print_once(f"[logger] failed to write trace: {e}", "logfile")


# ===================== DECORATOR =====================


def log_call(func):
    """Decorator that traces call inputs and outputs/errors when tracing is enabled."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        if not ENABLE_LOGGING:
            return func(*args, **kwargs)

        header = f"# {func.__module__} - {func.__qualname__}"
        lines = [f"{header} (START)\n", "- inputs:\n"]
        try:
            bound = inspect.signature(func).bind_partial(*args, **kwargs)
            lines.extend(f"  {k}: {_safe_str(v)}\n" for k, v in bound.arguments.items())
        except TypeError as e:
            lines.append(f"  <failed to parse signature: {e}>\n")
        lines.append("\n")
        _append(lines)

        try:
            out = func(*args, **kwargs)
        except Exception as e:
            _append([f"{header} (FAILURE)\n", f"- error: {type(e).__name__}: {e}\n", f"{SEP}\n"])
            raise
        _append([f"{header} (SUCCESS)\n", "- outputs:\n", f"  {_safe_str(out)}\n", f"{SEP}\n"])
        return out

    return wrapper


# ===================== SNAPSHOT HELPERS =====================


def log_string(label: str, value: str) -> None:
    """Append labeled string snapshot."""
    if not ENABLE_LOGGING:
        return
    if not isinstance(value, str):
        raise TypeError("log_string expects str")
    _append([f"# STRING - {label}\n\n", value + "\n", f"{SEP}\n"])


def log_json(label: str, obj: Any) -> None:
    """Append JSON snapshot (best-effort serialization)."""
    if not ENABLE_LOGGING:
        return
    try:
        payload = json.dumps(obj, indent=2, default=str)
    except (TypeError, ValueError) as e:
        payload = f"<json serialization failed: {e}>"
    _append([f"# JSON - {label}\n\n", payload + "\n", f"{SEP}\n"])


def log_records(label: str, records: list, max_rows: int = 20) -> None:
    """Append a head-only snapshot of raw records."""
    if not ENABLE_LOGGING:
        return
    lines = [f"# RECORDS - {label}\n\n", f"count={len(records)}\n\n"]
    lines.extend(f"{_safe_str(dict(r))}\n" for r in records[:max_rows])
    if len(records) > max_rows:
        lines.append(f"... ({len(records) - max_rows} more rows)\n")
    lines.append(f"{SEP}\n")
    _append(lines)

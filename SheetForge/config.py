"""Configuration policies and runtime settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

CONFIG_FILENAME = "config.yml"
DEFAULT_TABLE = "excel_data"
DEFAULT_SQLITE_URI = "sqlite:///sheetforge.db"


@dataclass(frozen=True)
class IngestPolicy:
    """Ingestion behavior controls."""
    min_fill_ratio: float = 0.6
    default_table: str = DEFAULT_TABLE
    atomic: bool = False
    serialize_by_table: bool = False
    column_fallback: str = "col_"
    schema: Optional[str] = None


@dataclass
class Settings:
    """Process-wide settings for the store, upload handling and HTTP server."""
    db_uri: str = DEFAULT_SQLITE_URI
    upload_dir: Path = Path("uploads")
    allowed_extensions: frozenset = frozenset({"xlsx", "xls", "csv"})
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    host: str = "0.0.0.0"
    port: int = 5500
    keep_uploads: bool = False
    policy: IngestPolicy = field(default_factory=IngestPolicy)


def find_config_file(path: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Resolve config.yml: explicit path, then CWD, then project root."""
    if path is not None:
        return Path(path)
    cwd_path = Path.cwd() / CONFIG_FILENAME
    if cwd_path.exists():
        return cwd_path
    root_path = Path(__file__).resolve().parents[1] / CONFIG_FILENAME
    return root_path if root_path.exists() else None


def read_config_file(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    config_path = find_config_file(path)
    if config_path is None or not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _db_uri_from_env(environ: Mapping[str, str]) -> Optional[str]:
    if environ.get("DB_URI"):
        return environ["DB_URI"]
    name = environ.get("DB_NAME")
    if not name:
        return None
    user = environ.get("DB_USER", "")
    password = environ.get("DB_PASSWORD", "")
    host = environ.get("DB_HOST") or "localhost"
    port = environ.get("DB_PORT") or "5432"
    auth = f"{user}:{password}@" if password else (f"{user}@" if user else "")
    return f"postgresql+psycopg2://{auth}{host}:{port}/{name}"


def _policy_from(section: Mapping[str, Any]) -> IngestPolicy:
    known = {k: v for k, v in section.items() if k in IngestPolicy.__dataclass_fields__}
    return IngestPolicy(**known)


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from defaults, config.yml sections and environment overrides.

    Sections read from the YAML file: ``database`` (``uri``), ``server``
    (``host``, ``port``, ``upload_dir``, ``cors_origins``, ``keep_uploads``,
    ``allowed_extensions``) and ``ingest`` (IngestPolicy fields).
    """
    environ = os.environ if environ is None else environ
    raw = read_config_file(path)
    settings = Settings()

    database = raw.get("database") or {}
    if database.get("uri"):
        settings.db_uri = str(database["uri"])

    server = raw.get("server") or {}
    if "host" in server:
        settings.host = str(server["host"])
    if "port" in server:
        settings.port = int(server["port"])
    if "upload_dir" in server:
        settings.upload_dir = Path(server["upload_dir"])
    if "cors_origins" in server:
        settings.cors_origins = list(server["cors_origins"])
    if "keep_uploads" in server:
        settings.keep_uploads = bool(server["keep_uploads"])
    if "allowed_extensions" in server:
        settings.allowed_extensions = frozenset(e.lower().lstrip(".") for e in server["allowed_extensions"])

    ingest = raw.get("ingest") or {}
    if ingest:
        settings.policy = _policy_from(ingest)

    env_uri = _db_uri_from_env(environ)
    if env_uri:
        settings.db_uri = env_uri
    if environ.get("PORT"):
        settings.port = int(environ["PORT"])
    if environ.get("UPLOAD_DIR"):
        settings.upload_dir = Path(environ["UPLOAD_DIR"])
    return settings


def with_policy(settings: Settings, **overrides: Any) -> Settings:
    """Copy settings with selected IngestPolicy fields replaced."""
    return replace(settings, policy=replace(settings.policy, **overrides))

"""Command line entry: ``python -m SheetForge serve`` or ``python -m SheetForge load FILE``."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import load_settings, with_policy
from .errors import ConflictError, IngestError
from .executor import ingest_file
from .store import TableStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="SheetForge")
    parser.add_argument("--config", default=None, help="Path to config.yml")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    load = sub.add_parser("load", help="Ingest one spreadsheet file")
    load.add_argument("file")
    load.add_argument("--table", default=None)
    load.add_argument("--force", action="store_true", help="Drop and recreate an existing table")
    load.add_argument("--atomic", action="store_true", help="Roll back the whole load on any failure")
    return parser


def _serve(settings, host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(settings), host=host or settings.host, port=port or settings.port)
    return 0


def _load(settings, args) -> int:
    if args.atomic:
        settings = with_policy(settings, atomic=True)
    store = TableStore.from_uri(settings.db_uri, db_schema=settings.policy.schema)
    try:
        report = ingest_file(store, args.file, args.table, args.force, settings.policy)
    except ConflictError as e:
        print(json.dumps({"success": False, "message": str(e), "tableExists": True, "tableName": e.table_name}))
        return 1
    except (IngestError, FileNotFoundError) as e:
        print(json.dumps({"success": False, "message": str(e)}))
        return 1
    finally:
        store.dispose()
    print(json.dumps(report.to_dict(), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = _build_parser().parse_args(argv)
    settings = load_settings(args.config)
    if args.command == "serve":
        return _serve(settings, args.host, args.port)
    return _load(settings, args)


if __name__ == "__main__":
    sys.exit(main())

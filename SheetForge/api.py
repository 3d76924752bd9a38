"""FastAPI surface: table existence check and spreadsheet upload."""
from __future__ import annotations

import logging
import shutil
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, File, Form, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, load_settings
from .errors import ConflictError, ValidationError
from .executor import Ingestor
from .io import is_allowed_file
from .store import TableStore

logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def save_upload(upload: UploadFile, upload_dir: Path) -> Path:
    """Store the upload under a per-request name ending in its base filename."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid.uuid4().hex}_{Path(upload.filename).name}"
    with target.open("wb") as out:
        shutil.copyfileobj(upload.file, out)
    return target


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Report store reachability on startup; the server starts either way."""
    app.state.store.check_connection()
    yield


def create_app(settings: Optional[Settings] = None, store: Optional[TableStore] = None) -> FastAPI:
    """Build the app around one TableStore shared by all requests.

    Args:
        settings: Runtime settings; read from config.yml and the environment if omitted.
        store: Store handle; built from ``settings.db_uri`` if omitted.
    """
    settings = settings or load_settings()
    store = store or TableStore.from_uri(settings.db_uri, db_schema=settings.policy.schema)
    ingestor = Ingestor(store, settings.policy)

    app = FastAPI(title="SheetForge", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    @app.get("/test")
    def ping() -> dict:
        return {"message": "Server is running"}

    @app.get("/table-exists")
    def table_exists(name: Optional[str] = Query(default=None)):
        if not name:
            return _failure(400, "Table name is required", exists=False)
        try:
            exists = store.has_table(name)
        except SQLAlchemyError as e:
            logger.exception("Error checking table exists")
            return _failure(500, str(e), exists=False)
        return {"success": True, "exists": exists, "tableName": name}

    @app.post("/upload")
    def upload(
        file: Optional[UploadFile] = File(default=None),
        tableName: Optional[str] = Form(default=None),
        forceOverwrite: Optional[str] = Form(default=None),
    ):
        if file is None or not file.filename:
            return _failure(400, "No file uploaded")
        if not is_allowed_file(file.filename, settings.allowed_extensions):
            return _failure(400, f"Unsupported file type: {file.filename}")

        path = None
        try:
            path = save_upload(file, settings.upload_dir)
            report = ingestor.ingest_file(tableName, forceOverwrite == "true", path)
        except ConflictError as e:
            return _failure(409, str(e), tableExists=True, tableName=e.table_name)
        except ValidationError as e:
            return _failure(400, str(e))
        except Exception as e:
            logger.exception("Error in upload handler")
            return _failure(500, str(e))
        finally:
            if path is not None and not settings.keep_uploads:
                path.unlink(missing_ok=True)
        return report.to_dict()

    return app

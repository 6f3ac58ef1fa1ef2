from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Body, File, Response, UploadFile, status
from fastapi.responses import JSONResponse

from petro_import.db.store import StoreUnavailableError
from petro_import.excel.reader import EXCEL_SUFFIXES, WorkbookError
from petro_import.services.orchestrator import (
    ImportRun,
    ImportSettings,
    ProcessingError,
    run_direct_import,
    run_import,
)

from .dependencies import ConfigDep, SchemaDep, StoreDep
from .schemas import ErrorResponse, ImportReportResponse

"""Import API routes, one set per entity (/api/rocks/..., /api/minerals/...)."""

logger = logging.getLogger(__name__)

router = APIRouter()

EXCEL_CONTENT_TYPES = frozenset(
    {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
    }
)

IMPORT_ROUTE = dict(
    response_model=ImportReportResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def error_response(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    body = ErrorResponse(message=message, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _report(run: ImportRun, response: Response) -> ImportReportResponse:
    if not run.report.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return ImportReportResponse.from_report(run.report)


def _is_excel_upload(file: UploadFile) -> bool:
    filename = (file.filename or "").lower()
    return filename.endswith(EXCEL_SUFFIXES) or file.content_type in EXCEL_CONTENT_TYPES


def _guarded(
    label: str, response: Response, action: Callable[[], ImportRun]
) -> ImportReportResponse | JSONResponse:
    """Run an import and map pipeline failures onto HTTP status codes."""
    try:
        return _report(action(), response)
    except WorkbookError as e:
        logger.warning("%s: invalid workbook: %s", label, e)
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid Excel file", str(e))
    except ProcessingError as e:
        logger.warning("%s: %s", label, e)
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))
    except StoreUnavailableError as e:
        logger.error("%s: %s", label, e)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Store unavailable", str(e))
    except Exception as e:
        logger.exception("%s: unexpected error", label)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Server error: {e}", str(e))


@router.post("/{entity}/import", **IMPORT_ROUTE)
def import_upload(
    schema: SchemaDep,
    config: ConfigDep,
    store: StoreDep,
    response: Response,
    file: Annotated[UploadFile | None, File(description="Excel workbook (.xlsx/.xls)")] = None,
) -> Any:
    """Import an uploaded workbook."""
    if file is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "No file uploaded")
    if not _is_excel_upload(file):
        return error_response(status.HTTP_400_BAD_REQUEST, "Only Excel files are allowed")
    content = file.file.read(config.upload_max_bytes + 1)
    if len(content) > config.upload_max_bytes:
        return error_response(
            status.HTTP_413_CONTENT_TOO_LARGE,
            f"File exceeds the {config.upload_max_bytes} byte limit",
        )
    if not content:
        return error_response(status.HTTP_400_BAD_REQUEST, "Uploaded file is empty")

    logger.info("upload %s: %d bytes, %s", file.filename, len(content), file.content_type)
    settings = ImportSettings.from_config(config, schema.key)
    return _guarded(
        f"import {schema.key}",
        response,
        lambda: run_import(schema, content, store, settings, source_name=file.filename or "<upload>"),
    )


@router.post("/{entity}/import/default", **IMPORT_ROUTE)
def import_default(schema: SchemaDep, config: ConfigDep, store: StoreDep, response: Response) -> Any:
    """Import the workbook configured as the entity's default_file."""
    default_file = config.entity(schema.key).default_file
    if not default_file or not Path(default_file).exists():
        return error_response(status.HTTP_404_NOT_FOUND, f"Default {schema.label} file not found", default_file)
    path = Path(default_file)
    settings = ImportSettings.from_config(config, schema.key)
    return _guarded(f"import default {schema.key}", response, lambda: run_import(schema, path, store, settings))


@router.post("/{entity}/import/direct", **IMPORT_ROUTE)
def import_direct(
    schema: SchemaDep,
    config: ConfigDep,
    store: StoreDep,
    response: Response,
    rows: Annotated[list[dict[str, Any]], Body()],
) -> Any:
    """Upsert a JSON array of records keyed by column names."""
    if not rows:
        return error_response(
            status.HTTP_400_BAD_REQUEST, f"Invalid request: expected an array of {schema.key[:-1]} data"
        )
    settings = ImportSettings.from_config(config, schema.key)
    return _guarded(
        f"direct import {schema.key}", response, lambda: run_direct_import(schema, rows, store, settings)
    )

"""
Bulk import endpoints: per-entity uploads, combined workbooks, validate-only
checks and template downloads.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from property_import.api.dependencies import get_orchestrator
from property_import.api.schemas.shared import ImportResult, TemplateSkeleton, ValidationReport
from property_import.domain.imports.errors import (
    MalformedInputError,
    UnsupportedEntityTypeError,
    UploadTooLargeError,
)
from property_import.domain.imports.orchestrator import ImportOrchestrator
from property_import.domain.imports.templates import (
    XLSX_MEDIA_TYPE,
    build_multi_sheet_template,
    build_template,
    template_file_name,
    template_skeleton,
)
from property_import.domain.imports.validators import list_available_presets

router = APIRouter(tags=["imports"])

logger = logging.getLogger(__name__)


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, UploadTooLargeError):
        return HTTPException(status_code=413, detail=str(exc))
    if isinstance(exc, (MalformedInputError, UnsupportedEntityTypeError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Import failed: {str(exc)}")


def _xlsx_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/imports/all", response_model=ImportResult)
async def import_all_endpoint(
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(default=None),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Import a combined workbook (Owners, Buildings, Tenants and Lots sheets).

    Sheets are processed in dependency order so later sheets can reference
    rows created by earlier ones.
    """
    file_content = await file.read()
    logger.info("Received combined import '%s' (%d bytes)", file.filename, len(file_content))
    try:
        return await run_in_threadpool(
            orchestrator.import_workbook,
            file_content,
            file.filename or "upload.xlsx",
            x_user_id,
        )
    except (MalformedInputError, UnsupportedEntityTypeError) as exc:
        raise _to_http_error(exc)


@router.post("/imports/validate/{entity_type}", response_model=ValidationReport)
async def validate_import_endpoint(
    entity_type: str,
    file: UploadFile = File(...),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Validate an upload without creating anything."""
    file_content = await file.read()
    try:
        return await run_in_threadpool(
            orchestrator.validate_file,
            file_content,
            file.filename or "upload.xlsx",
            entity_type,
        )
    except (MalformedInputError, UnsupportedEntityTypeError) as exc:
        raise _to_http_error(exc)


@router.post("/imports/{entity_type}", response_model=ImportResult)
async def import_entity_endpoint(
    entity_type: str,
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(default=None),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Import one entity type from an Excel or CSV upload.

    Parameters:
    - entity_type: owners, buildings, tenants or lots
    - file: the spreadsheet to import
    - X-User-Id header: optional uploader identifier recorded on created rows

    Returns the import result; its ``import_id`` can be polled on
    ``/import-jobs/{import_id}`` while the import runs.
    """
    file_content = await file.read()
    logger.info("Received %s import '%s' (%d bytes)", entity_type, file.filename, len(file_content))
    try:
        return await run_in_threadpool(
            orchestrator.import_file,
            file_content,
            file.filename or "upload.xlsx",
            entity_type,
            x_user_id,
        )
    except (MalformedInputError, UnsupportedEntityTypeError) as exc:
        raise _to_http_error(exc)


@router.get("/imports/templates/multi-sheet")
async def multi_sheet_template_endpoint():
    content = await run_in_threadpool(build_multi_sheet_template)
    return _xlsx_response(content, template_file_name())


@router.get("/imports/templates/{entity_type}")
async def template_endpoint(entity_type: str):
    try:
        content = await run_in_threadpool(build_template, entity_type)
    except UnsupportedEntityTypeError as exc:
        raise _to_http_error(exc)
    return _xlsx_response(content, template_file_name(entity_type))


@router.get("/imports/templates/{entity_type}/columns", response_model=TemplateSkeleton)
async def template_columns_endpoint(entity_type: str):
    """Column layout and example rows of a template, as JSON."""
    try:
        return template_skeleton(entity_type)
    except UnsupportedEntityTypeError as exc:
        raise _to_http_error(exc)


@router.get("/imports/validation-presets")
async def validation_presets_endpoint():
    """Preset formats (email, phone, ISO date) checked on uploaded cells."""
    return {"success": True, "presets": list_available_presets()}

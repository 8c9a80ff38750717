"""
Bulk import wizard API routes.

Tenant scope comes from the X-Workspace-Id / X-User-Id headers; the
caller is already authorized upstream.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
import structlog

from models.imports import (
    CreateImportSessionRequest,
    FieldMappingRequest,
    ImportOptionsRequest,
    ImportSessionResponse,
    SelectEntityTypeRequest,
)
from services.import_service import get_import_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# TENANT SCOPE
# ===================

@dataclass
class TenantScope:
    workspace_id: str
    user_id: str


def get_tenant(
    x_workspace_id: str = Header(..., description="Resolved workspace id"),
    x_user_id: str = Header(..., description="Acting user id"),
) -> TenantScope:
    return TenantScope(workspace_id=x_workspace_id, user_id=x_user_id)


# ===================
# ROUTES
# ===================

@router.post("/sessions", response_model=ImportSessionResponse, status_code=201)
def create_session(
    data: Optional[CreateImportSessionRequest] = None,
    tenant: TenantScope = Depends(get_tenant),
):
    """
    Open an import wizard session.

    Passing entity_type skips the type selection step.
    """
    try:
        data = data or CreateImportSessionRequest()
        service = get_import_service()
        session = service.create_session(
            tenant.workspace_id,
            tenant.user_id,
            entity_type=data.entity_type,
            account_id=data.account_id,
        )
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}", response_model=ImportSessionResponse)
def get_session(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """
    Get the current state of a session.

    Raises:
        404: Session unknown, expired or in another workspace
    """
    try:
        service = get_import_service()
        session = service.get_session(session_id, tenant.workspace_id, tenant.user_id)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/entity-type", response_model=ImportSessionResponse)
def select_entity_type(
    session_id: str,
    data: SelectEntityTypeRequest,
    tenant: TenantScope = Depends(get_tenant),
):
    """Choose what the file contains. Transactions need an account_id."""
    try:
        service = get_import_service()
        session = service.select_entity_type(
            session_id,
            tenant.workspace_id,
            tenant.user_id,
            data.entity_type,
            data.account_id,
        )
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/upload", response_model=ImportSessionResponse)
async def upload_file(
    session_id: str,
    file: UploadFile = File(..., description="CSV, TSV, TXT or XLSX file"),
    delimiter: Optional[str] = Form(None, description="Field delimiter; detected when omitted"),
    tenant: TenantScope = Depends(get_tenant),
):
    """
    Upload the file to import.

    Returns the parsed headers, a sample of rows and the proposed
    column mapping.

    Raises:
        413: File too large
        422: Unsupported type, unreadable file, or no data rows
    """
    try:
        content = await file.read()

        service = get_import_service()
        session = await run_in_threadpool(
            service.upload,
            session_id,
            tenant.workspace_id,
            tenant.user_id,
            content,
            file.filename,
            delimiter=delimiter or None,
        )
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.put("/sessions/{session_id}/mapping", response_model=ImportSessionResponse)
def update_mapping(
    session_id: str,
    data: FieldMappingRequest,
    tenant: TenantScope = Depends(get_tenant),
):
    """
    Replace the column mapping and re-preview rows.

    Mapping problems are returned in mapping_errors, not as an error status.
    """
    try:
        service = get_import_service()
        session = service.update_mapping(session_id, tenant.workspace_id, tenant.user_id, data)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/preview", response_model=ImportSessionResponse)
def preview(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """
    Confirm the mapping and check for duplicates / match lead names.

    Raises:
        422: Required columns not mapped
        503: Database unreachable
    """
    try:
        service = get_import_service()
        session = service.preview(session_id, tenant.workspace_id, tenant.user_id)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/options", response_model=ImportSessionResponse)
def set_options(
    session_id: str,
    data: ImportOptionsRequest,
    tenant: TenantScope = Depends(get_tenant),
):
    """Include or skip rows flagged as duplicates."""
    try:
        service = get_import_service()
        session = service.set_include_duplicates(
            session_id,
            tenant.workspace_id,
            tenant.user_id,
            data.include_duplicates,
        )
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/back", response_model=ImportSessionResponse)
def go_back(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """Return to the previous step."""
    try:
        service = get_import_service()
        session = service.back(session_id, tenant.workspace_id, tenant.user_id)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/reset", response_model=ImportSessionResponse)
def reset(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """Start over in the same session (import more)."""
    try:
        service = get_import_service()
        session = service.reset(session_id, tenant.workspace_id, tenant.user_id)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/commit", response_model=ImportSessionResponse)
def commit(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """
    Import the accepted rows.

    The result (imported / failed / skipped counts and per-row errors) is
    in the returned session.

    Raises:
        409: A commit is already running for this session
        422: No row would be imported
    """
    try:
        service = get_import_service()
        session = service.commit(session_id, tenant.workspace_id, tenant.user_id)
        return service.to_response(session)

    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}", status_code=204)
def close_session(session_id: str, tenant: TenantScope = Depends(get_tenant)):
    """Close the wizard and discard the session."""
    try:
        service = get_import_service()
        service.close(session_id, tenant.workspace_id, tenant.user_id)
        return Response(status_code=204)

    except Exception as e:
        return handle_error(e)

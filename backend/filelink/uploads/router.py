"""FastAPI router for upload endpoints.

Endpoints:
    POST /upload/{field_name}        - Upload a file for a field
    GET  /upload/{field_name}/files  - List the field's upload rows
    POST /upload/{field_name}/sweep  - Run the orphan sweep for a field

The router is the transport. It streams the multipart part into the staging
directory, derives the transfer status, and owns the staged file. Whatever
the executor did not move is deleted once the request is handled.
"""
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..config import UploadSettings, get_config
from ..errors import UploadError
from .schemas import (
    FileListResponse,
    SweepResponse,
    TransferStatus,
    UploadedRef,
    UploadMetadata,
    UploadResponse,
)
from .service import UploadService, get_upload_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])

CHUNK_SIZE = 1024 * 1024


def upload_settings() -> UploadSettings:
    """Dependency: upload transport settings."""
    return get_config().uploads


def upload_service() -> UploadService:
    """Dependency: the configured upload service."""
    service = get_upload_service()
    if service is None:
        raise HTTPException(status_code=503, detail="Upload service is not initialised")
    return service


def _keyed(rows: Optional[Dict[Any, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    return {str(k): v for k, v in (rows or {}).items()}


async def _stage(file: UploadFile, staging_dir: Path, max_bytes: int) -> UploadMetadata:
    """Copy the multipart part to the staging directory."""
    if not file.filename:
        return UploadMetadata(name="", tmp_path=staging_dir / "missing", status=TransferStatus.NO_FILE)

    staging_dir.mkdir(parents=True, exist_ok=True)
    size = 0
    status = TransferStatus.OK
    with tempfile.NamedTemporaryFile(dir=staging_dir, prefix="upload-", delete=False) as fh:
        tmp_path = Path(fh.name)
        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                status = TransferStatus.SIZE_EXCEEDED
                break
            fh.write(chunk)

    return UploadMetadata(
        name=file.filename,
        tmp_path=tmp_path,
        size=size,
        mime_type=file.content_type or "application/octet-stream",
        status=status,
    )


@router.post("/{field_name}", response_model=UploadResponse)
async def upload_file(
    field_name: str,
    upload: UploadFile = File(...),
    settings: UploadSettings = Depends(upload_settings),
    service: UploadService = Depends(upload_service),
) -> UploadResponse:
    """Upload a file for a field.

    Args:
        field_name: Registered upload field, e.g. "users.image_id".
        upload: The file (multipart part named "upload").

    Returns:
        UploadResponse with the new id and row, or the error message.

    Raises:
        HTTPException 404: If the field is not registered
    """
    if service.get_field(field_name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload field: {field_name}")

    metadata = await _stage(upload, Path(settings.staging_dir), settings.max_file_size_bytes)
    try:
        result, files = service.handle_upload(field_name, metadata)
    finally:
        staged = Path(metadata.tmp_path)
        if metadata.name and staged.exists():
            staged.unlink()

    if not result.ok:
        return UploadResponse(error=result.error)

    logger.info(f"File uploaded: {metadata.name} ({metadata.size} bytes) for {field_name}")

    return UploadResponse(
        upload=UploadedRef(id=result.id),
        files={table: _keyed(rows) for table, rows in files.items()},
    )


@router.get("/{field_name}/files", response_model=FileListResponse)
async def list_files(
    field_name: str,
    service: UploadService = Depends(upload_service),
) -> FileListResponse:
    """List the upload rows of a field."""
    field = service.get_field(field_name)
    if field is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload field: {field_name}")

    try:
        rows = _keyed(service.list_files(field_name))
    except UploadError as e:
        logger.error(f"Listing files for {field_name} failed: {e.message}")
        raise HTTPException(status_code=500, detail=e.message)
    return FileListResponse(table=field.spec.table, files=rows, count=len(rows))


@router.post("/{field_name}/sweep", response_model=SweepResponse)
async def sweep_field(
    field_name: str,
    service: UploadService = Depends(upload_service),
) -> SweepResponse:
    """Offer the field's orphaned rows to its orphan policy."""
    if service.get_field(field_name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload field: {field_name}")

    try:
        result = service.sweep(field_name)
    except UploadError as e:
        logger.error(f"Sweep for {field_name} failed: {e.message}")
        raise HTTPException(status_code=500, detail=e.message)
    logger.info(f"Sweep for {field_name}: {len(result.orphans)} orphans, {result.deleted} deleted")

    return SweepResponse(orphans=len(result.orphans), approved=result.approved, deleted=result.deleted)

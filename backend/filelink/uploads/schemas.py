"""Data models for upload handling.

This module defines:
- TransferStatus: host-reported transfer outcome for an upload
- UploadMetadata: one upload event (filename, staged location, size, type)
- UploadResult: outcome of executing an upload (identifier or error)
- SweepResult: outcome of an orphan sweep
- Response models rendered by the HTTP router

UploadMetadata is created by the transport per request and discarded once
the executor returns; it is frozen so validators and computed values cannot
alter what later stages see.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransferStatus(IntEnum):
    """Transfer status codes reported by the transport.

    The numeric values follow the conventional multipart upload error codes
    so they can be shown to users as "(code)".
    """
    OK = 0
    SIZE_EXCEEDED = 1
    FORM_SIZE_EXCEEDED = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


class UploadMetadata(BaseModel):
    """A single uploaded file plus its transport metadata.

    The shape is the same whatever delivered the file (HTTP multipart, CLI,
    test harness).
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Original filename as sent by the client")
    tmp_path: Path = Field(..., description="Staged file location")
    size: int = Field(0, ge=0, description="File size in bytes")
    mime_type: str = Field("application/octet-stream", description="Client-reported MIME type")
    status: TransferStatus = Field(TransferStatus.OK, description="Transfer status")


@dataclass
class UploadResult:
    """Result of an upload execution.

    Attributes:
        id: Final identifier, either the row id, the moved path when no
            table is configured, or a custom action's return value.
        error: Human-readable failure message (None on success).
        row_id: Primary key of the upload's row, when a table is configured.
            Differs from ``id`` when a custom action names the stored file.
    """
    id: Any = None
    error: Optional[str] = None
    row_id: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        """Allow using UploadResult in boolean context."""
        return self.ok


@dataclass
class SweepResult:
    """Result of an orphan sweep.

    Attributes:
        orphans: Orphan rows offered to the policy (empty if none found).
        approved: Whether the policy returned a literal True.
        deleted: Number of rows removed.
    """
    orphans: List[Dict[str, Any]] = field(default_factory=list)
    approved: bool = False
    deleted: int = 0


class UploadedRef(BaseModel):
    """Identifier of the file that was just uploaded."""
    id: Any = Field(..., description="Row id or action result")


class UploadResponse(BaseModel):
    """Response from POST /upload/{field_name}.

    On success ``upload`` and ``files`` are set. ``files`` maps the upload
    table to its rows keyed by primary key. On failure only ``error`` is set.
    """
    upload: Optional[UploadedRef] = None
    files: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    error: Optional[str] = None


class FileListResponse(BaseModel):
    """Response from GET /upload/{field_name}/files."""
    table: Optional[str] = None
    files: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    count: int = 0


class SweepResponse(BaseModel):
    """Response from POST /upload/{field_name}/sweep."""
    orphans: int = Field(..., description="Orphan rows found")
    approved: bool = Field(..., description="Whether the policy approved deletion")
    deleted: int = Field(..., description="Rows deleted")

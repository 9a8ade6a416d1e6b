"""File upload intake and database linkage.

This module validates uploaded files, records each one as a row of a
configured table, resolves the file's final path from a naming template
(which may use the row's primary key), and moves the file into place.
A companion sweep removes rows that no record references any more.

Components:
- UploadSpec: per-field configuration (action, table mapping, validators)
- ValidatorChain: transfer, extension and custom checks
- UploadExecutor: two-phase insert/backfill, then the file move
- OrphanSweeper: orphan detection and policy-driven deletion
- UploadService / router: field registry and HTTP transport
"""

from .executor import Pending, PendingInsert, UploadExecutor
from .fields import Computed, UploadTag, Value
from .reader import read_files
from .schemas import SweepResult, TransferStatus, UploadMetadata, UploadResult
from .service import UploadField, UploadService, build_field
from .spec import UploadSpec
from .sweeper import OrphanSweeper, remove_files_policy, resolve_reference
from .validators import ValidatorChain, file_extensions, file_size

__all__ = [
    "Pending",
    "PendingInsert",
    "UploadExecutor",
    "Computed",
    "UploadTag",
    "Value",
    "read_files",
    "SweepResult",
    "TransferStatus",
    "UploadMetadata",
    "UploadResult",
    "UploadField",
    "UploadService",
    "build_field",
    "UploadSpec",
    "OrphanSweeper",
    "remove_files_policy",
    "resolve_reference",
    "ValidatorChain",
    "file_extensions",
    "file_size",
]

"""Upload execution: validate, record, resolve paths, store the file.

The row and the file depend on each other. The final path may contain the
row's primary key, and that key may only exist once the row is inserted.
The executor therefore writes in two phases:

1. ``insert_placeholder``: insert the row. Columns whose value depends on
   the key (path tags and non-empty strings, which may hold ``__ID__``) get a
   per-upload pending token so NOT NULL constraints hold. The token is
   ``PENDING_TOKEN_LENGTH`` (13) characters, so a deferred string column
   must accept at least that many.
2. ``backfill``: resolve the path once with the assigned id and update
   every deferred column in a single statement keyed by the primary key.

Only after that is the file moved (``perform_action``). The row and the
move are not atomic. If the move fails, the row stays behind with resolved
paths and the failure is reported; the orphan sweep or an operator cleans
it up. Callers needing the insert and update to be atomic wrap ``execute`` in
``store.transaction()``.

The staged file belongs to the transport. The executor either moves it or
leaves it where it is.
"""
import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..errors import ConfigurationError, FilesystemError, UploadError
from ..store import RelationalStore
from .fields import PATH_TAGS, Computed, UploadTag, Value
from .macros import ID_MACRO, extension_of, resolve_path, web_path
from .mime import detect_mime_type
from .schemas import UploadMetadata, UploadResult
from .spec import UploadSpec

logger = logging.getLogger(__name__)

PENDING_PREFIX = "~"
PENDING_TOKEN_LENGTH = len(PENDING_PREFIX) + 12

# A deferred column is filled from a path tag or from a string template
DeferredValue = Union[UploadTag, str]


@dataclass(frozen=True)
class Pending:
    """Placeholder for columns awaiting the backfill.

    The stored token is unique per upload, so it cannot be mistaken for a
    real value or for another upload's placeholder.
    """
    token: str = field(default_factory=lambda: f"{PENDING_PREFIX}{uuid.uuid4().hex[:12]}")


@dataclass
class PendingInsert:
    """Outcome of phase one: the assigned id and the columns still to fill."""
    id: Any
    placeholder: Pending
    deferred: Dict[str, DeferredValue] = field(default_factory=dict)


class UploadExecutor:
    """Runs one upload spec against upload events.

    Args:
        spec: The field's upload configuration (read only).
        document_root: Prefix removed from system paths to build web paths.
        mime_detector: Callable sniffing a file's MIME type from its path.
    """

    def __init__(
        self,
        spec: UploadSpec,
        document_root: str = "",
        mime_detector: Callable[[Path], str] = detect_mime_type,
    ):
        self.spec = spec
        self.document_root = document_root
        self.mime_detector = mime_detector

    def execute(self, upload: UploadMetadata, store: Optional[RelationalStore] = None) -> UploadResult:
        """Process one upload from validation to file storage.

        Returns:
            UploadResult with the final identifier, or the error message.
        """
        try:
            self.spec.validator_chain().check(upload)

            row_id = None
            if self.spec.table:
                self.check_configuration()
                if store is None:
                    raise ConfigurationError("A database connection is required for this upload")
                pending = self.insert_placeholder(upload, store)
                row_id = pending.id
                if pending.deferred:
                    self.backfill(upload, store, pending)
            elif self.spec.action_value is None:
                raise ConfigurationError("No upload action or database table is configured")

            result = self.perform_action(upload, row_id)
        except UploadError as e:
            logger.warning(f"Upload of {upload.name!r} failed ({type(e).__name__}): {e.message}")
            return UploadResult(error=e.message)

        logger.info(f"Upload of {upload.name!r} stored as {result!r}")
        return UploadResult(id=result, row_id=row_id)

    def check_configuration(self) -> None:
        """Reject path columns when the final location cannot be known."""
        if isinstance(self.spec.action_value, str):
            return
        for source in self.spec.fields.values():
            if source in PATH_TAGS:
                raise ConfigurationError(
                    "Cannot set path information in database "
                    "if a custom method is used to save the file."
                )

    # -----------------------------------------------------------------------
    # Phase one
    # -----------------------------------------------------------------------

    def insert_placeholder(self, upload: UploadMetadata, store: RelationalStore) -> PendingInsert:
        """Insert the upload's row with deferred columns set to a placeholder."""
        spec = self.spec
        placeholder = Pending()
        values: Dict[str, Any] = {}
        deferred: Dict[str, DeferredValue] = {}
        given_id = None

        for column, source in spec.fields.items():
            if isinstance(source, UploadTag):
                if source is UploadTag.READ_ONLY:
                    continue
                if source in PATH_TAGS:
                    deferred[column] = source
                    values[column] = placeholder.token
                else:
                    values[column] = self._tag_value(source, upload)
            elif isinstance(source, (Value, Computed)):
                value = source.value if isinstance(source, Value) else source(store, upload)

                if column == spec.primary_key:
                    # Caller-supplied key: written as is, and authoritative
                    if value is not None:
                        given_id = value
                    values[column] = value
                elif isinstance(value, str) and value:
                    deferred[column] = value
                    values[column] = placeholder.token
                else:
                    values[column] = value
            else:
                raise TypeError(f"Unknown field source for column {column!r}: {source!r}")

        new_id = store.insert(spec.table, values, spec.primary_key)
        row_id = given_id if given_id is not None else new_id
        logger.debug(f"Inserted {spec.table} row {row_id!r} ({len(deferred)} deferred columns)")

        return PendingInsert(id=row_id, placeholder=placeholder, deferred=deferred)

    def _tag_value(self, tag: UploadTag, upload: UploadMetadata) -> Any:
        if tag is UploadTag.CONTENT:
            try:
                return Path(upload.tmp_path).read_bytes()
            except OSError as e:
                raise FilesystemError(f"Could not read the uploaded file: {e.strerror}") from e
        if tag in (UploadTag.CONTENT_TYPE, UploadTag.MIME_TYPE):
            return self.mime_detector(Path(upload.tmp_path))
        if tag is UploadTag.EXTN:
            return extension_of(upload.name)
        if tag is UploadTag.FILE_NAME:
            return upload.name
        if tag is UploadTag.FILE_SIZE:
            return upload.size
        raise TypeError(f"Tag {tag!r} has no direct insert value")

    # -----------------------------------------------------------------------
    # Phase two
    # -----------------------------------------------------------------------

    def backfill(self, upload: UploadMetadata, store: RelationalStore, pending: PendingInsert) -> Dict[str, Any]:
        """Replace every placeholder of the new row with its final value.

        Returns:
            The column values written.
        """
        spec = self.spec
        path = web = None
        if isinstance(spec.action_value, str):
            path = resolve_path(spec.action_value, upload.name, pending.id)
            web = web_path(path, self.document_root)

        updates: Dict[str, Any] = {}
        for column, kind in pending.deferred.items():
            if kind is UploadTag.SYSTEM_PATH:
                updates[column] = path
            elif kind is UploadTag.WEB_PATH:
                updates[column] = web
            else:
                updates[column] = kind.replace(ID_MACRO, str(pending.id))

        store.update(spec.table, updates, {spec.primary_key: pending.id})
        return updates

    # -----------------------------------------------------------------------
    # File system
    # -----------------------------------------------------------------------

    def perform_action(self, upload: UploadMetadata, row_id: Any) -> Any:
        """Store the file and return the upload's final identifier."""
        action = self.spec.action_value

        if action is None:
            # Database-only storage (e.g. content in a blob column)
            return row_id

        if not isinstance(action, str):
            return action(upload, row_id)

        to = resolve_path(action, upload.name, row_id)
        try:
            shutil.move(str(upload.tmp_path), to)
        except OSError as e:
            logger.error(f"Moving {upload.tmp_path} to {to} failed: {e}")
            raise FilesystemError("An error occurred while moving the uploaded file.") from e

        mode = self.spec.file_mode
        if mode:
            try:
                os.chmod(to, mode)
            except OSError as e:
                logger.error(f"chmod {oct(mode)} on {to} failed: {e}")
                raise FilesystemError("An error occurred while setting the uploaded file's permissions.") from e

        return row_id if row_id is not None else to

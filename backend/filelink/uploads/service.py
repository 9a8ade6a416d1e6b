"""Upload fields and the service that links uploads to them.

An ``UploadField`` binds an ``UploadSpec`` to the column that will reference
the uploaded file (e.g. ``users.image_id``). ``UploadService`` holds the
registered fields and runs the complete protocol for an upload:

    sweep orphans (if a policy is set) -> execute upload -> read back the row

Sweeping comes first so the row about to be linked is never offered to the
orphan policy.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config import UploadFieldSettings
from ..errors import UploadError
from ..store import RelationalStore
from .executor import UploadExecutor
from .fields import UploadTag, parse_source
from .reader import read_files
from .schemas import SweepResult, UploadMetadata, UploadResult
from .spec import UploadSpec
from .sweeper import OrphanSweeper, remove_files_policy

logger = logging.getLogger(__name__)


@dataclass
class UploadField:
    """A field of ``owning_table`` whose value is an upload id.

    Attributes:
        name: Field (column) name, optionally qualified as "table.column".
        owning_table: Table holding the field.
        spec: How uploads for this field are handled.
    """
    name: str
    owning_table: str
    spec: UploadSpec


class UploadService:
    """Runs uploads for registered fields against one store.

    Args:
        store: Relational store holding upload and owning tables.
        document_root: Prefix stripped from system paths for web paths.
    """

    def __init__(self, store: RelationalStore, document_root: str = ""):
        self.store = store
        self.document_root = document_root
        self._fields: Dict[str, UploadField] = {}

    def register(self, field: UploadField) -> UploadField:
        self._fields[field.name] = field
        logger.info(f"Registered upload field {field.name} (table={field.spec.table})")
        return field

    def get_field(self, name: str) -> Optional[UploadField]:
        return self._fields.get(name)

    @property
    def field_names(self) -> List[str]:
        return list(self._fields)

    def _require(self, name: str) -> UploadField:
        field = self.get_field(name)
        if field is None:
            raise KeyError(name)
        return field

    def handle_upload(
        self,
        field_name: str,
        upload: UploadMetadata,
    ) -> Tuple[UploadResult, Dict[str, Dict[Any, Dict[str, Any]]]]:
        """Sweep, execute and read back one upload for a field.

        Returns:
            The upload result and a ``{table: {id: row}}`` map holding the
            new row (empty on failure or without a table). A failed sweep
            fails the upload before anything is written.

        Raises:
            KeyError: No field of that name is registered.
        """
        field = self._require(field_name)
        spec = field.spec

        if spec.orphan_policy is not None:
            try:
                OrphanSweeper(spec).sweep(self.store, field.owning_table, field.name)
            except UploadError as e:
                logger.warning(f"Orphan sweep for {field.name} failed: {e.message}")
                return UploadResult(error=e.message), {}

        executor = UploadExecutor(spec, document_root=self.document_root)
        result = executor.execute(upload, self.store)

        files: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        if result.ok and spec.table and result.row_id is not None:
            try:
                files[spec.table] = read_files(spec, self.store, [result.row_id]) or {}
            except UploadError as e:
                # The upload itself is stored; only the listing is missing
                logger.warning(f"Reading back {spec.table} row {result.row_id!r} failed: {e.message}")
        return result, files

    def list_files(self, field_name: str) -> Optional[Dict[Any, Dict[str, Any]]]:
        """All rows of the field's upload table (None if it has none)."""
        field = self._require(field_name)
        return read_files(field.spec, self.store)

    def sweep(self, field_name: str) -> SweepResult:
        """Run the orphan sweep for one field on demand."""
        field = self._require(field_name)
        return OrphanSweeper(field.spec).sweep(self.store, field.owning_table, field.name)


def build_field(settings: UploadFieldSettings) -> UploadField:
    """Create an ``UploadField`` from its YAML declaration."""
    spec = UploadSpec(settings.action)

    if settings.table:
        columns = {column: parse_source(raw) for column, raw in settings.columns.items()}
        spec.db(settings.table, settings.primary_key, columns)

        if settings.orphan_policy == "remove-files":
            path_columns = [c for c, src in columns.items() if src is UploadTag.SYSTEM_PATH]
            spec.db_clean(remove_files_policy(*path_columns), settings.clean_reference)

    if settings.allowed_extensions:
        spec.allowed_extensions(settings.allowed_extensions, settings.extension_error)
    spec.mode(settings.mode)

    return UploadField(name=settings.name, owning_table=settings.owning_table, spec=spec)


# Process-wide service, set during application startup
_service: Optional[UploadService] = None


def set_upload_service(service: Optional[UploadService]) -> None:
    global _service
    _service = service


def get_upload_service() -> Optional[UploadService]:
    return _service

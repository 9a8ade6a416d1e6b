"""Upload configuration for a single field.

An ``UploadSpec`` says how an uploaded file is recorded: where it goes on
disk (``action``), which row describes it (``db``), what it must satisfy
(``allowed_extensions``, ``validator``), how orphaned rows are cleaned
(``db_clean``) and which rows belong to it (``where``).

An UploadSpec is assembled once, when the field is defined, through the fluent
builder methods. Upload executions only read it, so one instance can
serve any number of concurrent requests.

Example:
    spec = (
        UploadSpec("/var/www/uploads/__ID__.__EXTN__")
        .db("files", "id", {
            "web_path": UploadTag.WEB_PATH,
            "file_name": UploadTag.FILE_NAME,
            "file_size": UploadTag.FILE_SIZE,
            "system_path": UploadTag.SYSTEM_PATH,
        })
        .allowed_extensions(["png", "jpg"], "Please upload an image file")
    )
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import ConfigurationError
from ..store import Where
from .fields import FieldSource, UploadTag, as_source
from .schemas import UploadMetadata
from .validators import DEFAULT_EXTENSION_MESSAGE, Validator, ValidatorChain

# Custom store function: (upload, assigned id) -> storage identifier
ActionFn = Callable[[UploadMetadata, Any], Any]
Action = Union[str, ActionFn]
RowFormatter = Callable[[Dict[str, Any]], None]
OrphanPolicy = Callable[[List[Dict[str, Any]]], Any]
WhereFn = Callable[[Where], None]

DEFAULT_MODE = 0o644


class UploadSpec:
    """Configuration for one upload field.

    Args:
        action: Path template or custom store function, see ``action()``.
    """

    def __init__(self, action: Optional[Action] = None):
        self._action: Optional[Action] = None
        self._table: Optional[str] = None
        self._primary_key: Optional[str] = None
        self._fields: Mapping[str, FieldSource] = MappingProxyType({})
        self._formatter: Optional[RowFormatter] = None
        self._extensions: Tuple[str, ...] = ()
        self._extension_error: str = DEFAULT_EXTENSION_MESSAGE
        self._orphan_policy: Optional[OrphanPolicy] = None
        self._clean_reference: Optional[str] = None
        self._mode: Optional[int] = DEFAULT_MODE
        self._validators: Tuple[Validator, ...] = ()
        self._where: Tuple[WhereFn, ...] = ()

        if action:
            self.action(action)

    # -----------------------------------------------------------------------
    # Builder
    # -----------------------------------------------------------------------

    def action(self, action: Action) -> "UploadSpec":
        """Set what happens to the file once validated and recorded.

        * A string: the full system path the file is moved to. It may use
          the ``__NAME__``, ``__ID__`` and ``__EXTN__`` macros.
        * A callable ``(upload, id) -> result``: the callable takes over
          storing the file, and its return becomes the upload's identifier.
        """
        if not isinstance(action, str) and not callable(action):
            raise ConfigurationError("Upload action must be a path template or a callable")
        self._action = action
        return self

    def allowed_extensions(
        self,
        extensions: Sequence[str],
        message: str = DEFAULT_EXTENSION_MESSAGE,
    ) -> "UploadSpec":
        """Restrict uploads to the given extensions (case-insensitive).

        An empty list removes the restriction.
        """
        self._extensions = tuple(extensions or ())
        self._extension_error = message
        return self

    def db(
        self,
        table: str,
        primary_key: str,
        fields: Mapping[str, Any],
        formatter: Optional[RowFormatter] = None,
    ) -> "UploadSpec":
        """Record each upload as a row of ``table``.

        Args:
            table: Table the file information is written to.
            primary_key: Its single-column primary key.
            fields: Column -> source: an ``UploadTag``, a literal, or a
                callable ``(store, upload) -> value``.
            formatter: Optional function mutating each row read back.
        """
        if not table:
            raise ConfigurationError("An upload table name is required")
        if not primary_key:
            raise ConfigurationError(f"Upload table {table!r} needs a primary key column")

        self._table = table
        self._primary_key = primary_key
        self._fields = MappingProxyType({column: as_source(src) for column, src in fields.items()})
        self._formatter = formatter
        return self

    def db_clean(self, policy: OrphanPolicy, reference: Optional[str] = None) -> "UploadSpec":
        """Set the policy offered orphaned rows.

        Args:
            policy: Called with the orphan rows; only a literal True return
                deletes them. It should remove the files first.
            reference: Column whose values keep rows alive ("column",
                "table.column" or "schema.table.column"). Defaults to the
                owning field's name.
        """
        self._orphan_policy = policy
        self._clean_reference = reference
        return self

    def mode(self, mode: Optional[int]) -> "UploadSpec":
        """Permission bits applied after a move; None leaves them alone."""
        self._mode = mode
        return self

    def validator(self, fn: Validator) -> "UploadSpec":
        """Append a validator ``(upload) -> Optional[str]``."""
        self._validators = self._validators + (fn,)
        return self

    def where(self, fn: WhereFn) -> "UploadSpec":
        """Append a condition function applied to every select on the table."""
        self._where = self._where + (fn,)
        return self

    # -----------------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------------

    @property
    def action_value(self) -> Optional[Action]:
        return self._action

    @property
    def has_custom_action(self) -> bool:
        return self._action is not None and not isinstance(self._action, str)

    @property
    def table(self) -> Optional[str]:
        return self._table

    @property
    def primary_key(self) -> Optional[str]:
        return self._primary_key

    @property
    def fields(self) -> Mapping[str, FieldSource]:
        return self._fields

    @property
    def formatter(self) -> Optional[RowFormatter]:
        return self._formatter

    @property
    def extensions(self) -> Tuple[str, ...]:
        return self._extensions

    @property
    def extension_error(self) -> str:
        return self._extension_error

    @property
    def orphan_policy(self) -> Optional[OrphanPolicy]:
        return self._orphan_policy

    @property
    def clean_reference(self) -> Optional[str]:
        return self._clean_reference

    @property
    def file_mode(self) -> Optional[int]:
        return self._mode

    @property
    def validators(self) -> Tuple[Validator, ...]:
        return self._validators

    @property
    def where_clauses(self) -> Tuple[WhereFn, ...]:
        return self._where

    def validator_chain(self) -> ValidatorChain:
        return ValidatorChain(self._extensions, self._extension_error, self._validators)

    def readable_columns(self) -> List[str]:
        """Primary key plus every mapped column except raw content."""
        columns = [self._primary_key] if self._primary_key else []
        for column, source in self._fields.items():
            if source is not UploadTag.CONTENT and column not in columns:
                columns.append(column)
        return columns

    def build_where(self, where: Optional[Where] = None) -> Where:
        """Apply every registered where-clause to ``where`` (or a new builder)."""
        where = where if where is not None else Where()
        for fn in self._where:
            fn(where)
        return where

    def __repr__(self) -> str:
        action = self._action if isinstance(self._action, str) else "<custom>"
        return f"UploadSpec(action={action!r}, table={self._table!r})"

"""Sources for database columns written on upload.

Each mapped column gets exactly one source:

- ``UploadTag``: a reserved tag derived from the upload itself.
- ``Value``: a literal constant.
- ``Computed``: a function ``(store, upload) -> value`` called at insert time.

``as_source`` normalises whatever a caller passes: tags and wrappers pass
through, callables become ``Computed``, everything else becomes ``Value``.
A plain string is always a literal. Use the tag members (or
``parse_source`` for config input) to select reserved behaviour.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

if TYPE_CHECKING:
    from ..store import RelationalStore
    from .schemas import UploadMetadata


class UploadTag(str, Enum):
    """Reserved upload-metadata tags for database columns.

    Attributes:
        CONTENT: Raw bytes of the staged file (write to a blob column).
        CONTENT_TYPE: MIME type sniffed from the file contents.
        EXTN: Extension parsed from the original filename, case preserved.
        FILE_NAME: Original filename, extension included.
        FILE_SIZE: Size in bytes.
        MIME_TYPE: Same as CONTENT_TYPE.
        SYSTEM_PATH: Absolute path of the stored file, known after insert.
        WEB_PATH: SYSTEM_PATH with the document root removed.
        READ_ONLY: Never written; the column is only read back.
    """
    CONTENT = "content"
    CONTENT_TYPE = "content-type"
    EXTN = "extension"
    FILE_NAME = "file-name"
    FILE_SIZE = "file-size"
    MIME_TYPE = "mime-type"
    SYSTEM_PATH = "system-path"
    WEB_PATH = "web-path"
    READ_ONLY = "read-only"


PATH_TAGS = (UploadTag.SYSTEM_PATH, UploadTag.WEB_PATH)


@dataclass(frozen=True)
class Value:
    """Literal column value."""
    value: Any


@dataclass(frozen=True)
class Computed:
    """Column value computed from the store and the upload."""
    fn: Callable[["RelationalStore", "UploadMetadata"], Any]

    def __call__(self, store: "RelationalStore", upload: "UploadMetadata") -> Any:
        return self.fn(store, upload)


FieldSource = Union[UploadTag, Value, Computed]


def as_source(obj: Any) -> FieldSource:
    """Wrap a raw mapping value in its source variant."""
    if isinstance(obj, (UploadTag, Value, Computed)):
        return obj
    if callable(obj):
        return Computed(obj)
    return Value(obj)


def parse_source(raw: Any) -> FieldSource:
    """Interpret a configuration value: tag names become tags."""
    if isinstance(raw, str):
        try:
            return UploadTag(raw)
        except ValueError:
            pass
    return as_source(raw)

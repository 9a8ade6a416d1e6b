"""Exception hierarchy for upload handling.

Every failure the uploader should see derives from ``UploadError`` and
carries a single human-readable ``message``. The executor turns these into
an ``UploadResult`` with ``error`` set. Anything else that escapes it is a
bug in caller-supplied code and propagates.

Categories:
    TransferError: the upload never arrived intact (size limit, transport fault).
    ValidationError: extension mismatch or a registered validator's rejection.
    ConfigurationError: the upload spec cannot be executed as configured.
    StoreError: the relational store failed (insert/update/select/delete).
    FilesystemError: moving or chmod-ing the file failed after the row exists.
"""


class UploadError(Exception):
    """Base class for failures reported back to the uploader."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransferError(UploadError):
    """The host reported a transfer fault for the upload."""


class ValidationError(UploadError):
    """The upload was rejected by the validator chain."""


class ConfigurationError(UploadError):
    """The upload configuration is inconsistent."""


class StoreError(UploadError):
    """A relational store operation failed."""


class FilesystemError(UploadError):
    """A filesystem action failed after the database row was written."""

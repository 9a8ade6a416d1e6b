"""Validator chain run against an upload before any side effect.

Stages, in fixed order, stopping at the first failure:
    1. Transfer status: any non-OK status fails.
    2. Extension allow-list (only when one is configured).
    3. Caller-supplied validators, in registration order.

A validator is any callable ``(upload) -> Optional[str]``. Returning a string
rejects the upload with that message; any other return passes.

The ``file_extensions`` and ``file_size`` factories build common validators
for use with ``UploadSpec.validator``.
"""
from typing import Callable, Iterable, Optional, Sequence

from ..errors import TransferError, ValidationError
from .macros import extension_of, safe_filename
from .schemas import TransferStatus, UploadMetadata

Validator = Callable[[UploadMetadata], Optional[str]]

SIZE_EXCEEDED_MESSAGE = "File exceeds maximum file upload size"
NO_FILE_NAME_MESSAGE = "No file name was supplied with the upload"
DEFAULT_EXTENSION_MESSAGE = "This file type cannot be uploaded"


def check_transfer(upload: UploadMetadata) -> None:
    """Fail if the upload did not arrive intact."""
    if upload.status != TransferStatus.OK:
        if upload.status == TransferStatus.SIZE_EXCEEDED:
            raise TransferError(SIZE_EXCEEDED_MESSAGE)
        raise TransferError(f"There was an error uploading the file ({int(upload.status)})")

    if not safe_filename(upload.name):
        raise TransferError(NO_FILE_NAME_MESSAGE)


def check_extension(
    upload: UploadMetadata,
    allowed: Optional[Sequence[str]],
    message: str = DEFAULT_EXTENSION_MESSAGE,
) -> None:
    """Fail if the upload's extension is not in ``allowed`` (case-insensitive)."""
    if not allowed:
        return
    extn = extension_of(upload.name).lower()
    if extn not in {a.lower() for a in allowed}:
        raise ValidationError(message)


class ValidatorChain:
    """Ordered validation stages for one upload spec.

    Args:
        allowed_extensions: Optional extension allow-list; empty means any.
        extension_error: Message used when the extension check fails.
        validators: Caller-supplied validators, run last, in order.
    """

    def __init__(
        self,
        allowed_extensions: Optional[Sequence[str]] = None,
        extension_error: str = DEFAULT_EXTENSION_MESSAGE,
        validators: Iterable[Validator] = (),
    ):
        self.allowed_extensions = tuple(allowed_extensions or ())
        self.extension_error = extension_error
        self.validators = tuple(validators)

    def check(self, upload: UploadMetadata) -> None:
        """Run every stage, raising on the first failure.

        Raises:
            TransferError: The transfer itself failed.
            ValidationError: The extension or a custom validator rejected it.
        """
        check_transfer(upload)
        check_extension(upload, self.allowed_extensions, self.extension_error)

        for validator in self.validators:
            res = validator(upload)
            if isinstance(res, str):
                raise ValidationError(res)

    def run(self, upload: UploadMetadata) -> Optional[str]:
        """Run the chain and return the error message, or None if it passes."""
        try:
            self.check(upload)
        except (TransferError, ValidationError) as e:
            return e.message
        return None


# =============================================================================
# Stock validators
# =============================================================================


def file_extensions(
    extensions: Sequence[str],
    message: str = DEFAULT_EXTENSION_MESSAGE,
) -> Validator:
    """Validator accepting only the given extensions (case-insensitive)."""
    allowed = {e.lower() for e in extensions}

    def _validate(upload: UploadMetadata) -> Optional[str]:
        if extension_of(upload.name).lower() not in allowed:
            return message
        return None

    return _validate


def file_size(max_bytes: int, message: str = "Uploaded file is too big") -> Validator:
    """Validator rejecting uploads larger than ``max_bytes``."""

    def _validate(upload: UploadMetadata) -> Optional[str]:
        if upload.size > max_bytes:
            return message
        return None

    return _validate

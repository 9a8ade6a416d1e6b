"""Content-based MIME detection via libmagic."""
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


def detect_mime_type(path: Union[str, Path]) -> str:
    """Sniff the MIME type of the file at ``path`` from its contents.

    The client-reported type is never consulted.
    """
    import magic

    mime = magic.from_file(str(path), mime=True)
    logger.debug("Detected MIME type %s for %s", mime, path)
    return mime

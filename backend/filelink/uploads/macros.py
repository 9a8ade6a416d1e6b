"""Path macro resolution for action templates.

Macros:
    __NAME__  the uploaded file's name, extension included
    __ID__    the primary key assigned to the upload's row
    __EXTN__  the text after the last dot of the filename, case preserved

Unknown tokens are left as they are. Only the basename of the client's
filename is ever substituted, so a name such as ``../../etc/passwd`` cannot
move the file out of the template's directory.
"""
import re
from typing import Any, Optional

NAME_MACRO = "__NAME__"
ID_MACRO = "__ID__"
EXTN_MACRO = "__EXTN__"

_MACRO_RE = re.compile("|".join(re.escape(m) for m in (NAME_MACRO, ID_MACRO, EXTN_MACRO)))


def safe_filename(name: str) -> str:
    """Basename of a client-supplied filename.

    Both separators are treated as directory breaks, whatever the host OS,
    and NUL bytes are dropped. Returns "" for names that have no usable
    final segment ("", ".", "..").
    """
    base = name.replace("\x00", "").replace("\\", "/").rsplit("/", 1)[-1]
    if base in ("", ".", ".."):
        return ""
    return base


def extension_of(name: str) -> str:
    """Extension of ``name``: the text after its last dot, or ""."""
    base = safe_filename(name)
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1]


def resolve_path(template: str, name: str, row_id: Optional[Any]) -> str:
    """Substitute the macros in ``template`` for one upload.

    Substitution is a single pass, so macro-like text inside the filename is
    never expanded again. A missing ``row_id`` (no table configured)
    substitutes as "".
    """
    base = safe_filename(name)
    values = {
        NAME_MACRO: base,
        ID_MACRO: "" if row_id is None else str(row_id),
        EXTN_MACRO: extension_of(base),
    }
    return _MACRO_RE.sub(lambda m: values[m.group(0)], template)


def web_path(system_path: str, document_root: str) -> str:
    """``system_path`` without the ``document_root`` prefix.

    Leaves the path unchanged when the prefix is empty or absent.
    """
    if document_root and system_path.startswith(document_root):
        return system_path[len(document_root):]
    return system_path

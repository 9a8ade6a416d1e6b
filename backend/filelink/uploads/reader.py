"""Read path: load upload rows for display."""
from typing import Any, Dict, Iterable, Optional

from ..store import RelationalStore, Where
from .spec import UploadSpec


def read_files(
    spec: UploadSpec,
    store: RelationalStore,
    ids: Optional[Iterable[Any]] = None,
) -> Optional[Dict[Any, Dict[str, Any]]]:
    """Load the rows of the field's upload table, keyed by primary key.

    Raw content columns are never selected. The configured where-clauses and
    row formatter are applied.

    Args:
        spec: Upload configuration.
        store: Store to read from.
        ids: Optional primary-key values to restrict the result to.

    Returns:
        Rows keyed by primary key, or None when no table is configured.
    """
    if not spec.table:
        return None

    where = Where()
    if ids is not None:
        where.in_(spec.primary_key, list(ids))
    spec.build_where(where)

    rows = store.select(spec.table, spec.readable_columns(), where)

    out: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        if spec.formatter:
            spec.formatter(row)
        out[row[spec.primary_key]] = row
    return out

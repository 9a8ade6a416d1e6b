"""Orphan detection and cleanup for upload tables.

A row in the upload table is orphaned once no record in the owning table
references its primary key any more, e.g. after the owner was deleted or
pointed at a different file. The sweeper collects those rows and offers
them to the field's orphan policy:

- the policy gets every orphan row at once;
- only a literal ``True`` return deletes them, in a single batch;
- anything else (False, None, a truthy non-bool) keeps them.

The policy is expected to remove the files before approving, so an
ambiguous answer must never lose track of a file.

Timing:
    Sweep a field *before* linking a new upload to it. Otherwise the row
    being linked is still unreferenced and would be swept at the moment it
    becomes live.
"""
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..store import RelationalStore, Where
from .schemas import SweepResult
from .spec import UploadSpec

logger = logging.getLogger(__name__)


def resolve_reference(owning_table: str, field_name: str) -> Tuple[str, str]:
    """Split a reference column name into (table, column).

    "column" belongs to ``owning_table``; "table.column" names both;
    longer names ("schema.table.column") use their last two segments.
    """
    parts = field_name.split(".")
    if len(parts) == 1:
        return owning_table, parts[0]
    return parts[-2], parts[-1]


class OrphanSweeper:
    """Finds and (with the policy's consent) deletes orphaned upload rows.

    Args:
        spec: The field's upload configuration.
    """

    def __init__(self, spec: UploadSpec):
        self.spec = spec

    def find_orphans(self, store: RelationalStore, owning_table: str, field_name: str) -> List[Dict[str, Any]]:
        """Rows of the upload table not referenced by the reference column."""
        spec = self.spec
        if not spec.table:
            return []

        ref_table, ref_column = resolve_reference(owning_table, spec.clean_reference or field_name)
        where = spec.build_where(Where().not_in_subquery(spec.primary_key, ref_table, ref_column))

        return store.select(spec.table, spec.readable_columns(), where)

    def sweep(self, store: RelationalStore, owning_table: str, field_name: str) -> SweepResult:
        """Offer orphan rows to the policy and delete them if it says so.

        Args:
            store: Store holding both tables.
            owning_table: Table of the field the uploads are linked from.
            field_name: The field's column name, possibly qualified.

        Returns:
            SweepResult describing what was found and removed.
        """
        spec = self.spec
        policy = spec.orphan_policy
        if not spec.table or policy is None:
            return SweepResult()

        orphans = self.find_orphans(store, owning_table, field_name)
        if not orphans:
            return SweepResult()

        logger.info("Found %d orphaned rows in %s", len(orphans), spec.table)

        if policy(orphans) is not True:
            logger.info("Orphan policy kept %d rows in %s", len(orphans), spec.table)
            return SweepResult(orphans=orphans, approved=False)

        ids = [row[spec.primary_key] for row in orphans]
        deleted = store.delete(spec.table, Where().in_(spec.primary_key, ids))
        logger.info("Deleted %d orphaned rows from %s", deleted, spec.table)

        return SweepResult(orphans=orphans, approved=True, deleted=deleted)


def remove_files_policy(*columns: str) -> Callable[[List[Dict[str, Any]]], bool]:
    """Orphan policy unlinking the files named in ``columns``.

    Missing files count as removed. If any other unlink fails the policy
    returns False, so the rows survive for another attempt.
    """

    def _policy(rows: List[Dict[str, Any]]) -> bool:
        ok = True
        for row in rows:
            for column in columns:
                path: Optional[str] = row.get(column)
                if not path:
                    continue
                try:
                    os.remove(path)
                    logger.info("Removed orphaned file %s", path)
                except FileNotFoundError:
                    logger.debug("Orphaned file already gone: %s", path)
                except OSError as exc:
                    logger.warning("Could not remove orphaned file %s: %s", path, exc)
                    ok = False
        return ok

    return _policy

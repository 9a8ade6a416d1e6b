"""DuckDB implementation of the relational store.

This module compiles ``Where`` predicates and table operations into
parameterized DuckDB SQL. Identifiers are double-quoted (dotted names are
quoted per segment) and every value travels as a ``?`` binding.

Generated identifiers come from ``INSERT ... RETURNING <primary key>``, so
tables are expected to produce their keys with a sequence default or an
explicit value, e.g.:

    CREATE SEQUENCE files_seq START 1;
    CREATE TABLE files (
        id INTEGER DEFAULT nextval('files_seq') PRIMARY KEY,
        ...
    );

Thread Safety:
    The DuckDB connection is NOT thread-safe. Use one store per worker
    process; DuckDB handles concurrent file access internally.

Usage:
    store = DuckDBStore.get_instance("filelink.duckdb")
    with store.transaction():
        new_id = store.insert("files", {"name": "a.png"}, primary_key="id")
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import duckdb

from ..errors import StoreError
from .base import Comparison, InList, NotInSubquery, RelationalStore, Where, WhereLike

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Quote a (possibly dotted) identifier for DuckDB."""
    parts = name.split(".")
    return ".".join('"' + part.replace('"', '""') + '"' for part in parts)


def _loggable(params: Sequence[Any]) -> List[Any]:
    return [f"<{len(p)} bytes>" if isinstance(p, (bytes, bytearray)) else p for p in params]


class DuckDBStore(RelationalStore):
    """Relational store backed by a DuckDB connection.

    Attributes:
        _instance: Process-wide instance returned by ``get_instance``.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["DuckDBStore"] = None
    _db_path: str = "filelink.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open (or create) the database.

        Args:
            db_path: Path to the DuckDB file, or ":memory:". Defaults to
                "filelink.duckdb".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._last_insert_id: Any = None

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "DuckDBStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton (used by tests and app shutdown)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self._db_path)
            except duckdb.Error as exc:
                raise StoreError(f"Database error: {exc}") from exc
            logger.info("Opened DuckDB store at %s", self._db_path)
        return self._connection

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> duckdb.DuckDBPyConnection:
        logger.debug("SQL: %s | bindings=%s", sql, _loggable(params))
        conn = self._get_connection()
        try:
            return conn.execute(sql, list(params))
        except duckdb.Error as exc:
            logger.error("Statement failed: %s (%s)", sql, exc)
            raise StoreError(f"Database error: {exc}") from exc

    # -----------------------------------------------------------------------
    # SQL compilation
    # -----------------------------------------------------------------------

    def _compile_where(self, where: WhereLike) -> Tuple[str, List[Any]]:
        builder = Where.coerce(where)
        clauses: List[str] = []
        params: List[Any] = []

        for condition in builder:
            column = quote_identifier(condition.column)
            if isinstance(condition, Comparison):
                if condition.value is None and condition.op in ("=", "!="):
                    clauses.append(f"{column} IS {'NOT ' if condition.op == '!=' else ''}NULL")
                else:
                    clauses.append(f"{column} {condition.op.upper()} ?")
                    params.append(condition.value)
            elif isinstance(condition, InList):
                if not condition.values:
                    # IN () is not valid SQL; an empty list matches nothing
                    clauses.append("TRUE" if condition.negate else "FALSE")
                    continue
                marks = ", ".join("?" for _ in condition.values)
                keyword = "NOT IN" if condition.negate else "IN"
                clauses.append(f"{column} {keyword} ({marks})")
                params.extend(condition.values)
            elif isinstance(condition, NotInSubquery):
                ref = quote_identifier(condition.ref_column)
                clauses.append(
                    f"{column} NOT IN (SELECT {ref} FROM {quote_identifier(condition.table)} "
                    f"WHERE {ref} IS NOT NULL)"
                )
            else:
                raise TypeError(f"Unknown condition type: {type(condition).__name__}")

        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _compile_order(order_by: Optional[Mapping[str, str]]) -> str:
        if not order_by:
            return ""
        terms = []
        for column, direction in order_by.items():
            direction = (direction or "asc").upper()
            if direction not in ("ASC", "DESC"):
                raise ValueError(f"Invalid sort direction {direction!r}")
            terms.append(f"{quote_identifier(column)} {direction}")
        return " ORDER BY " + ", ".join(terms)

    # -----------------------------------------------------------------------
    # RelationalStore
    # -----------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        where: WhereLike = None,
        order_by: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        fields = ", ".join(quote_identifier(c) for c in columns) if columns else "*"
        where_sql, params = self._compile_where(where)
        sql = f"SELECT {fields} FROM {quote_identifier(table)}{where_sql}{self._compile_order(order_by)}"

        cursor = self._execute(sql, params)
        names = [d[0] for d in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        primary_key: Optional[str] = None,
    ) -> Any:
        if values:
            columns = ", ".join(quote_identifier(c) for c in values)
            marks = ", ".join("?" for _ in values)
            sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({marks})"
        else:
            sql = f"INSERT INTO {quote_identifier(table)} DEFAULT VALUES"

        if primary_key:
            sql += f" RETURNING {quote_identifier(primary_key)}"
            row = self._execute(sql, list(values.values())).fetchone()
            self._last_insert_id = row[0] if row else None
            return self._last_insert_id

        sql += " RETURNING *"
        return len(self._execute(sql, list(values.values())).fetchall())

    def update(self, table: str, values: Mapping[str, Any], where: WhereLike = None) -> int:
        if not values:
            return 0
        assignments = ", ".join(f"{quote_identifier(c)} = ?" for c in values)
        where_sql, where_params = self._compile_where(where)
        sql = f"UPDATE {quote_identifier(table)} SET {assignments}{where_sql} RETURNING *"
        return len(self._execute(sql, list(values.values()) + where_params).fetchall())

    def delete(self, table: str, where: WhereLike = None) -> int:
        where_sql, params = self._compile_where(where)
        sql = f"DELETE FROM {quote_identifier(table)}{where_sql} RETURNING *"
        return len(self._execute(sql, params).fetchall())

    def begin(self) -> None:
        logger.debug("BEGIN TRANSACTION")
        try:
            self._get_connection().begin()
        except duckdb.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc

    def commit(self) -> None:
        logger.debug("COMMIT")
        try:
            self._get_connection().commit()
        except duckdb.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc

    def rollback(self) -> None:
        logger.debug("ROLLBACK")
        try:
            self._get_connection().rollback()
        except duckdb.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc

    def last_insert_id(self) -> Any:
        return self._last_insert_id

    # -----------------------------------------------------------------------
    # Extras
    # -----------------------------------------------------------------------

    def any(self, table: str, where: WhereLike = None) -> bool:
        """True if at least one row matches."""
        where_sql, params = self._compile_where(where)
        sql = f"SELECT 1 FROM {quote_identifier(table)}{where_sql} LIMIT 1"
        return self._execute(sql, params).fetchone() is not None

    def count(self, table: str, where: WhereLike = None) -> int:
        """Number of matching rows."""
        where_sql, params = self._compile_where(where)
        sql = f"SELECT COUNT(*) FROM {quote_identifier(table)}{where_sql}"
        return self._execute(sql, params).fetchone()[0]

    def sql(self, statement: str, params: Sequence[Any] = ()) -> List[tuple]:
        """Run a raw statement and return whatever rows it produced."""
        cursor = self._execute(statement, params)
        if cursor.description is None:
            return []
        return cursor.fetchall()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

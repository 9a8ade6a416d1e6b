"""Dialect-free relational store contract.

Upload components never build SQL. They describe predicates with a
``Where`` builder and call the ``RelationalStore`` methods; the concrete
store compiles them for its database.

Usage:
    where = Where().eq("owner", "alice").not_in_subquery("id", "users", "image_id")
    rows = store.select("files", ["id", "path"], where, order_by={"id": "asc"})
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

# Operators accepted by Where.compare()
OPERATORS: Tuple[str, ...] = ("=", "!=", "<", "<=", ">", ">=", "like")


# =============================================================================
# Predicates
# =============================================================================


@dataclass(frozen=True)
class Comparison:
    """``column <op> value``."""
    column: str
    op: str
    value: Any


@dataclass(frozen=True)
class InList:
    """``column [NOT] IN (values...)``."""
    column: str
    values: Tuple[Any, ...]
    negate: bool = False


@dataclass(frozen=True)
class NotInSubquery:
    """``column NOT IN (SELECT ref_column FROM table WHERE ref_column IS NOT NULL)``."""
    column: str
    table: str
    ref_column: str


Condition = Union[Comparison, InList, NotInSubquery]


class Where:
    """Conjunction of conditions, built fluently.

    Where-clause functions registered on an upload spec receive the builder
    for the select being assembled and add their own conditions to it.
    """

    def __init__(self, conditions: Optional[Sequence[Condition]] = None) -> None:
        self._conditions: List[Condition] = list(conditions or [])

    @classmethod
    def coerce(cls, where: Union["Where", Mapping[str, Any], None]) -> "Where":
        """Accept a builder, an equality mapping, or nothing."""
        if where is None:
            return cls()
        if isinstance(where, Where):
            return where
        builder = cls()
        for column, value in where.items():
            builder.eq(column, value)
        return builder

    def eq(self, column: str, value: Any) -> "Where":
        return self.compare(column, "=", value)

    def compare(self, column: str, op: str, value: Any) -> "Where":
        op = op.lower()
        if op not in OPERATORS:
            raise ValueError(f"Unsupported operator {op!r}; expected one of {OPERATORS}")
        self._conditions.append(Comparison(column, op, value))
        return self

    def in_(self, column: str, values: Sequence[Any]) -> "Where":
        self._conditions.append(InList(column, tuple(values)))
        return self

    def not_in(self, column: str, values: Sequence[Any]) -> "Where":
        self._conditions.append(InList(column, tuple(values), negate=True))
        return self

    def not_in_subquery(self, column: str, table: str, ref_column: str) -> "Where":
        self._conditions.append(NotInSubquery(column, table, ref_column))
        return self

    @property
    def conditions(self) -> Tuple[Condition, ...]:
        return tuple(self._conditions)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._conditions)

    def __len__(self) -> int:
        return len(self._conditions)

    def __repr__(self) -> str:
        return f"Where({self._conditions!r})"


WhereLike = Union[Where, Mapping[str, Any], None]


# =============================================================================
# Store contract
# =============================================================================


class RelationalStore(ABC):
    """Parameterized table access used by the upload components.

    Implementations own all SQL construction and must raise
    ``filelink.errors.StoreError`` for any database failure.
    """

    @abstractmethod
    def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        where: WhereLike = None,
        order_by: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching rows as dicts keyed by column name."""

    @abstractmethod
    def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        primary_key: Optional[str] = None,
    ) -> Any:
        """Insert one row.

        Returns the generated primary-key value when ``primary_key`` is
        given, otherwise the affected row count.
        """

    @abstractmethod
    def update(self, table: str, values: Mapping[str, Any], where: WhereLike = None) -> int:
        """Update matching rows and return how many changed."""

    @abstractmethod
    def delete(self, table: str, where: WhereLike = None) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    def begin(self) -> None:
        """Open an explicit transaction."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the open transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the open transaction."""

    @abstractmethod
    def last_insert_id(self) -> Any:
        """Primary-key value produced by the most recent keyed insert."""

    @contextmanager
    def transaction(self) -> Iterator["RelationalStore"]:
        """Run a block inside begin/commit, rolling back on any exception."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

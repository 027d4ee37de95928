# Copyright 2021-present Kensho Technologies, LLC.
"""Abstract relational operations, executed by a RelationalBackend.

Operations describe what to do, never how: they carry table and column names, clauses and plain
values. Turning them into SQL is the backend's job.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..query_object import (
    ChainStarter,
    ComparisonClause,
    InClause,
    OrderTerm,
    QueryKey,
)


######
# Filtered scan steps, in the order a query chain may contain them.
######


@dataclass(frozen=True)
class SelectStep:
    """Restrict the returned columns."""

    columns: Tuple[str, ...]


@dataclass(frozen=True)
class StarterStep:
    """Open the query chain with its single starter clause."""

    starter: ChainStarter


@dataclass(frozen=True)
class AndWhereStep:
    """Conjoin a comparison with the chain so far."""

    clause: ComparisonClause


@dataclass(frozen=True)
class OrWhereStep:
    """Disjoin a comparison with the chain so far."""

    clause: ComparisonClause


@dataclass(frozen=True)
class OrWhereInStep:
    """Disjoin a membership test with the chain so far."""

    clause: InClause


@dataclass(frozen=True)
class LimitStep:
    """Return at most this many rows."""

    limit: int


@dataclass(frozen=True)
class OrderStep:
    """Sort the returned rows."""

    terms: Tuple[OrderTerm, ...]


ScanStep = Union[
    SelectStep, StarterStep, AndWhereStep, OrWhereStep, OrWhereInStep, LimitStep, OrderStep
]


######
# Operations
######


@dataclass(frozen=True)
class TableScan:
    """Read rows of a table, optionally restricted to some columns and a maximum count."""

    table: str
    columns: Tuple[str, ...] = ()
    limit: Optional[int] = None


@dataclass(frozen=True)
class FilteredScan:
    """Read rows of a table through a compiled query chain."""

    table: str
    steps: Tuple[ScanStep, ...]


@dataclass(frozen=True)
class AggregateQuery:
    """Compute the MIN or MAX of a column. Returns a single row holding the aggregate value."""

    table: str
    function: QueryKey
    column: str


@dataclass(frozen=True)
class InsertRow:
    """Insert a record, returning the id of the inserted row."""

    table: str
    record: Mapping[str, Any]
    id_column: Optional[str] = None


@dataclass(frozen=True)
class UpdateRows:
    """Update the rows whose predicate column equals the predicate value, returning their count."""

    table: str
    predicate: ComparisonClause
    record: Mapping[str, Any]


@dataclass(frozen=True)
class DeleteRows:
    """Delete the rows whose predicate column equals the predicate value, returning their count."""

    table: str
    predicate: ComparisonClause


@dataclass(frozen=True)
class DeleteAllRows:
    """Delete every row of a table, returning their count."""

    table: str


@dataclass(frozen=True)
class RawQuery:
    """Run dialect-specific SQL text, e.g. an introspection query, with bound parameters."""

    sql: str
    parameters: Dict[str, Any] = field(default_factory=dict)


Operation = Union[
    TableScan,
    FilteredScan,
    AggregateQuery,
    InsertRow,
    UpdateRows,
    DeleteRows,
    DeleteAllRows,
    RawQuery,
]

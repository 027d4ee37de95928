# Copyright 2021-present Kensho Technologies, LLC.
"""The canonical, engine-agnostic representation of a filtered read.

Query objects travel in two forms. The wire form is a dict keyed by QueryKey values, produced by
either input grammar (URL query strings or LoopBack-style filters) and checked by the validator.
The typed form is the QueryObject dataclass below, produced by the validator and consumed by the
compiler. Clauses are a tagged union of frozen dataclasses, one per clause shape.
"""
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


@unique
class QueryKey(Enum):
    """The recognized top-level keys of a query object in wire form."""

    SELECT = "SELECT"
    WHERE = "WHERE"
    WHERE_IN = "WHERE_IN"
    WHERE_NOT = "WHERE_NOT"
    WHERE_NOT_IN = "WHERE_NOT_IN"
    WHERE_BETWEEN = "WHERE_BETWEEN"
    WHERE_NOT_BETWEEN = "WHERE_NOT_BETWEEN"
    WHERE_LIKE = "WHERE_LIKE"
    OR_WHERE = "OR_WHERE"
    AND_WHERE = "AND_WHERE"
    OR_WHERE_IN = "OR_WHERE_IN"
    MIN = "MIN"
    MAX = "MAX"
    LIMIT = "LIMIT"
    ORDER = "ORDER"


RECOGNIZED_KEY_NAMES: FrozenSet[str] = frozenset(key.value for key in QueryKey)

# Exactly one of these may open a filtered query. All other clauses only extend it.
CHAIN_STARTER_KEYS: Tuple[QueryKey, ...] = (
    QueryKey.WHERE,
    QueryKey.WHERE_IN,
    QueryKey.WHERE_NOT,
    QueryKey.WHERE_NOT_IN,
    QueryKey.WHERE_BETWEEN,
    QueryKey.WHERE_NOT_BETWEEN,
    QueryKey.WHERE_LIKE,
)

COMPARISON_CLAUSE_KEYS = frozenset({QueryKey.WHERE, QueryKey.WHERE_NOT, QueryKey.WHERE_LIKE})
COMPARISON_LIST_KEYS = frozenset({QueryKey.AND_WHERE, QueryKey.OR_WHERE})
IN_CLAUSE_KEYS = frozenset({QueryKey.WHERE_IN, QueryKey.WHERE_NOT_IN, QueryKey.OR_WHERE_IN})
BETWEEN_CLAUSE_KEYS = frozenset({QueryKey.WHERE_BETWEEN, QueryKey.WHERE_NOT_BETWEEN})
AGGREGATE_KEYS = frozenset({QueryKey.MIN, QueryKey.MAX})

# Field names of clause records in wire form.
COLUMN_FIELD = "COLUMN"
COMPARATOR_FIELD = "COMPARATOR"
VALUE_FIELD = "VALUE"
VALUES_FIELD = "VALUES"
CLAUSE_FIELDS = frozenset({COLUMN_FIELD, COMPARATOR_FIELD, VALUE_FIELD, VALUES_FIELD})

# Field names of order entries in wire form.
ORDER_COLUMN_FIELD = "column"
ORDER_DIRECTION_FIELD = "order"


@unique
class Comparator(Enum):
    """The comparators a comparison clause may use."""

    EQ = "="
    GT = ">"
    LT = "<"

    @property
    def symbol(self) -> str:
        """Return the SQL operator symbol of the comparator."""
        return self.value


@unique
class SortDirection(Enum):
    """The directions an order term may sort in."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ComparisonClause:
    """Compare a column against a single value: column <comparator> value."""

    column: str
    comparator: Comparator
    value: Any


@dataclass(frozen=True)
class LikeClause:
    """Match a column against a pattern. The comparator is fixed to LIKE."""

    column: str
    value: Any


@dataclass(frozen=True)
class InClause:
    """Match a column against a non-empty sequence of values."""

    column: str
    values: Tuple[Any, ...]

    def __post_init__(self) -> None:
        """Validate fields."""
        if not self.values:
            raise AssertionError(f"Expected a non-empty values sequence for column {self.column}.")


@dataclass(frozen=True)
class BetweenClause:
    """Match a column against the inclusive range [low, high]."""

    column: str
    low: Any
    high: Any


@dataclass(frozen=True)
class OrderTerm:
    """Sort the results by a column."""

    column: str
    direction: SortDirection


Clause = Union[ComparisonClause, LikeClause, InClause, BetweenClause]


@dataclass(frozen=True)
class ChainStarter:
    """The single clause opening a filtered query, together with the key that introduced it."""

    kind: QueryKey
    clause: Clause

    def __post_init__(self) -> None:
        """Validate fields."""
        if self.kind not in CHAIN_STARTER_KEYS:
            raise AssertionError(f"{self.kind} cannot start a query chain.")

    @property
    def is_negated(self) -> bool:
        """Return True if the starter matches rows NOT satisfying its clause."""
        return self.kind in (
            QueryKey.WHERE_NOT,
            QueryKey.WHERE_NOT_IN,
            QueryKey.WHERE_NOT_BETWEEN,
        )


@dataclass(frozen=True)
class AggregateRequest:
    """A MIN or MAX over a column, replacing every other part of the query."""

    function: QueryKey
    column: str

    def __post_init__(self) -> None:
        """Validate fields."""
        if self.function not in AGGREGATE_KEYS:
            raise AssertionError(f"{self.function} is not an aggregate function.")


@dataclass
class QueryObject:
    """A validated query object. Every field is optional and independently meaningful."""

    select: List[str] = field(default_factory=list)
    starter: Optional[ChainStarter] = None
    and_where: List[ComparisonClause] = field(default_factory=list)
    or_where: List[ComparisonClause] = field(default_factory=list)
    or_where_in: List[InClause] = field(default_factory=list)
    aggregate: Optional[AggregateRequest] = None
    limit: Optional[int] = None
    order: List[OrderTerm] = field(default_factory=list)

    @property
    def is_aggregate(self) -> bool:
        """Return True if the query is a terminal MIN/MAX query."""
        return self.aggregate is not None

    @property
    def has_filters(self) -> bool:
        """Return True if any clause restricts the rows returned."""
        return self.starter is not None or bool(self.and_where or self.or_where or self.or_where_in)

    def to_dict(self) -> Dict[str, Any]:
        """Render the query object in its canonical wire form."""
        result: Dict[str, Any] = {}
        if self.select:
            result[QueryKey.SELECT.value] = list(self.select)
        if self.starter is not None:
            result[self.starter.kind.value] = clause_to_dict(self.starter.clause)
        if self.and_where:
            result[QueryKey.AND_WHERE.value] = [clause_to_dict(c) for c in self.and_where]
        if self.or_where:
            result[QueryKey.OR_WHERE.value] = [clause_to_dict(c) for c in self.or_where]
        if self.or_where_in:
            result[QueryKey.OR_WHERE_IN.value] = [clause_to_dict(c) for c in self.or_where_in]
        if self.aggregate is not None:
            result[self.aggregate.function.value] = self.aggregate.column
        if self.limit is not None:
            result[QueryKey.LIMIT.value] = self.limit
        if self.order:
            result[QueryKey.ORDER.value] = [
                {ORDER_COLUMN_FIELD: term.column, ORDER_DIRECTION_FIELD: term.direction.value}
                for term in self.order
            ]
        return result


def clause_to_dict(clause: Clause) -> Dict[str, Any]:
    """Render a clause as a clause record in wire form."""
    if isinstance(clause, ComparisonClause):
        return {
            COLUMN_FIELD: clause.column,
            COMPARATOR_FIELD: clause.comparator.name,
            VALUE_FIELD: clause.value,
        }
    elif isinstance(clause, LikeClause):
        return {COLUMN_FIELD: clause.column, VALUE_FIELD: clause.value}
    elif isinstance(clause, InClause):
        return {COLUMN_FIELD: clause.column, VALUES_FIELD: list(clause.values)}
    elif isinstance(clause, BetweenClause):
        return {COLUMN_FIELD: clause.column, VALUES_FIELD: [clause.low, clause.high]}
    else:
        raise AssertionError(f"Unreachable code reached: unknown clause type {clause!r}.")

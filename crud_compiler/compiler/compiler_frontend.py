# Copyright 2021-present Kensho Technologies, LLC.
"""Compile validated query objects into relational operations.

A filtered query is compiled into a chain of steps, always in the same order:

    SELECT -> chain starter -> AND_WHERE* -> OR_WHERE* -> OR_WHERE_IN* -> LIMIT -> ORDER

The ChainBuilder enforces this order while tracking the state of the chain:

    EMPTY --(starter)--> STARTED --(AND_WHERE, OR_WHERE, OR_WHERE_IN)--> EXTENDED
    any state --(build)--> TERMINAL

A MIN or MAX query is not a chain: it compiles to an AggregatePlan, which is executed as an
aggregate followed by a lookup of the full rows holding the aggregate value.

Before compilation, clause values are rewritten to match the semantic type of their column:
timestamp columns are compared against dialect date literals, boolean columns against the
storage sentinels, and number columns against numbers rather than numeric strings.
"""
from dataclasses import dataclass
from enum import Enum, unique
import logging
from typing import Any, List, Optional, Type, Union

from ..config import CrudConfig
from ..exceptions import CoercionError
from ..global_utils import try_parse_number
from ..query_object import (
    BetweenClause,
    ChainStarter,
    Clause,
    ComparisonClause,
    InClause,
    LikeClause,
    QueryObject,
)
from ..schema.table_schema import ColumnCategory, TableSchema
from ..type_coercion import to_comparison_date, to_storage_boolean
from ..typedefs import Failure, Result, Success
from .operations import (
    AggregateQuery,
    AndWhereStep,
    FilteredScan,
    LimitStep,
    OrderStep,
    OrWhereInStep,
    OrWhereStep,
    ScanStep,
    SelectStep,
    StarterStep,
)


logger = logging.getLogger(__name__)

_BOOLEAN_STRINGS = {"true": True, "false": False}


@unique
class ChainState(Enum):
    """The states of a query chain under construction."""

    EMPTY = "empty"
    STARTED = "started"
    EXTENDED = "extended"
    TERMINAL = "terminal"


# The position of each step kind in a chain. Steps of equal rank may repeat.
_STEP_ORDER: List[Type[Any]] = [
    SelectStep,
    StarterStep,
    AndWhereStep,
    OrWhereStep,
    OrWhereInStep,
    LimitStep,
    OrderStep,
]
_REPEATABLE_STEPS = (AndWhereStep, OrWhereStep, OrWhereInStep)
_EXTENSION_STEPS = (AndWhereStep, OrWhereStep, OrWhereInStep)


class ChainBuilder:
    """Accumulate the steps of a filtered scan, refusing steps that arrive out of order."""

    def __init__(self, table: str) -> None:
        """Start an empty chain over the table."""
        self.table = table
        self.state = ChainState.EMPTY
        self._steps: List[ScanStep] = []
        self._last_rank = -1

    def add(self, step: ScanStep) -> None:
        """Append a step to the chain, updating its state."""
        if self.state == ChainState.TERMINAL:
            raise AssertionError(f"Cannot add {step} to a chain that was already built.")

        rank = _STEP_ORDER.index(type(step))
        if rank < self._last_rank or (
            rank == self._last_rank and not isinstance(step, _REPEATABLE_STEPS)
        ):
            raise AssertionError(
                f"Step {step} arrived out of order after steps {self._steps}. Expected order: "
                f"{[step_type.__name__ for step_type in _STEP_ORDER]}."
            )

        if isinstance(step, StarterStep):
            if self.state != ChainState.EMPTY:
                raise AssertionError(f"Chain starter {step} added to a {self.state} chain.")
            self.state = ChainState.STARTED
        elif isinstance(step, _EXTENSION_STEPS):
            # Without a starter, the first extension opens the chain on its own.
            self.state = ChainState.EXTENDED

        self._last_rank = rank
        self._steps.append(step)

    def build(self) -> FilteredScan:
        """Finish the chain and return the filtered scan it describes."""
        if self.state == ChainState.TERMINAL:
            raise AssertionError("The chain was already built.")
        self.state = ChainState.TERMINAL
        return FilteredScan(self.table, tuple(self._steps))


@dataclass(frozen=True)
class AggregatePlan:
    """A terminal MIN/MAX query: run the aggregate, then look up the rows holding its value."""

    aggregate: AggregateQuery

    @property
    def table(self) -> str:
        """Return the table the aggregate runs over."""
        return self.aggregate.table


CompiledQuery = Union[FilteredScan, AggregatePlan]


######
# Value rewriting
######


def _rewrite_value(
    value: Any, category: Optional[ColumnCategory], config: CrudConfig, compare_dates: bool
) -> Any:
    """Rewrite a single clause value to match the semantic type of its column."""
    if category == ColumnCategory.TIMESTAMP and compare_dates:
        return to_comparison_date(value, config)
    elif category == ColumnCategory.BOOLEAN:
        if isinstance(value, str) and value.lower() in _BOOLEAN_STRINGS:
            value = _BOOLEAN_STRINGS[value.lower()]
        return to_storage_boolean(value, config)
    elif category == ColumnCategory.NUMBER:
        parsed_number = try_parse_number(value)
        return value if parsed_number is None else parsed_number
    else:
        return value


def rewrite_clause(
    clause: Clause, table_schema: Optional[TableSchema], config: CrudConfig
) -> Clause:
    """Return the clause with its values rewritten to match the semantic type of its column.

    LIKE patterns are never rewritten. Columns unknown to the table schema are left alone.

    Raises:
        CoercionError: if a value compared against a timestamp column is not a valid date
    """
    if table_schema is None or isinstance(clause, LikeClause):
        return clause

    category = table_schema.get_column_category(clause.column)
    if category is None:
        return clause

    if isinstance(clause, ComparisonClause):
        return ComparisonClause(
            clause.column,
            clause.comparator,
            _rewrite_value(clause.value, category, config, compare_dates=True),
        )
    elif isinstance(clause, InClause):
        return InClause(
            clause.column,
            tuple(
                _rewrite_value(value, category, config, compare_dates=True)
                for value in clause.values
            ),
        )
    elif isinstance(clause, BetweenClause):
        return BetweenClause(
            clause.column,
            _rewrite_value(clause.low, category, config, compare_dates=True),
            _rewrite_value(clause.high, category, config, compare_dates=True),
        )
    else:
        raise AssertionError(f"Unreachable code reached: unknown clause type {clause!r}.")


def _rewrite_comparison(
    clause: ComparisonClause, table_schema: Optional[TableSchema], config: CrudConfig
) -> ComparisonClause:
    """Rewrite a comparison clause, keeping its precise type."""
    rewritten_clause = rewrite_clause(clause, table_schema, config)
    if not isinstance(rewritten_clause, ComparisonClause):
        raise AssertionError(f"Rewriting changed the type of clause {clause}: {rewritten_clause}.")
    return rewritten_clause


def _rewrite_in_clause(
    clause: InClause, table_schema: Optional[TableSchema], config: CrudConfig
) -> InClause:
    """Rewrite a membership clause, keeping its precise type."""
    rewritten_clause = rewrite_clause(clause, table_schema, config)
    if not isinstance(rewritten_clause, InClause):
        raise AssertionError(f"Rewriting changed the type of clause {clause}: {rewritten_clause}.")
    return rewritten_clause


######
# Compilation
######


def _compile_filtered_scan(
    table: str, query: QueryObject, table_schema: Optional[TableSchema], config: CrudConfig
) -> FilteredScan:
    """Compile a non-aggregate query into a filtered scan."""
    builder = ChainBuilder(table)

    if query.select:
        builder.add(SelectStep(tuple(query.select)))

    if query.starter is not None:
        starter_clause = rewrite_clause(query.starter.clause, table_schema, config)
        builder.add(StarterStep(ChainStarter(query.starter.kind, starter_clause)))

    for and_clause in query.and_where:
        builder.add(AndWhereStep(_rewrite_comparison(and_clause, table_schema, config)))
    for or_clause in query.or_where:
        builder.add(OrWhereStep(_rewrite_comparison(or_clause, table_schema, config)))
    for in_clause in query.or_where_in:
        builder.add(OrWhereInStep(_rewrite_in_clause(in_clause, table_schema, config)))

    if query.limit is not None:
        builder.add(LimitStep(query.limit))
    if query.order:
        builder.add(OrderStep(tuple(query.order)))

    return builder.build()


def compile_query(
    table: str, query: QueryObject, table_schema: Optional[TableSchema], config: CrudConfig
) -> Result:
    """Compile a validated query object into the operations that run it.

    Args:
        table: name of the table to query
        query: the validated query object
        table_schema: the cached schema of the table, used to rewrite clause values. If None,
                      values are used as given.
        config: configuration naming the dialect and the boolean sentinels

    Returns:
        Success holding a FilteredScan or an AggregatePlan, or a coercion Failure if a value
        cannot be rewritten for its column
    """
    compiled_query: CompiledQuery
    if query.aggregate is not None:
        compiled_query = AggregatePlan(
            AggregateQuery(table, query.aggregate.function, query.aggregate.column)
        )
    else:
        try:
            compiled_query = _compile_filtered_scan(table, query, table_schema, config)
        except CoercionError as e:
            return Failure.from_exception(e)

    logger.log(
        logging.INFO if config.debug else logging.DEBUG,
        "Compiled query on table %s: %s",
        table,
        compiled_query,
    )
    return Success(compiled_query)

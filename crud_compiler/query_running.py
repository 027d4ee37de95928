# Copyright 2021-present Kensho Technologies, LLC.
import logging
from typing import Any, Mapping, Optional, Union

from funcy import first

from .backend import RelationalBackend
from .compiler.compiler_frontend import AggregatePlan, CompiledQuery, compile_query
from .compiler.operations import FilteredScan, StarterStep
from .compiler.validation import validate_query
from .config import CrudConfig
from .exceptions import BackendError, TranslationError
from .query_object import ChainStarter, Comparator, ComparisonClause, QueryKey
from .query_parsing.query_string import parse_raw_query
from .schema.table_schema import TableSchema
from .typedefs import Failure, Result, Success, is_failure


logger = logging.getLogger(__name__)


def _run_aggregate_plan(backend: RelationalBackend, plan: AggregatePlan) -> Any:
    """Run the aggregate, then return the full rows whose aggregated column holds its value."""
    aggregate = plan.aggregate
    aggregate_rows = backend.execute(aggregate)

    aggregate_row = first(aggregate_rows)
    aggregate_value = None if aggregate_row is None else first(aggregate_row.values())
    if aggregate_value is None:
        # The aggregate of an empty table is NULL, and no row can match it.
        return []

    lookup = FilteredScan(
        aggregate.table,
        (
            StarterStep(
                ChainStarter(
                    QueryKey.WHERE,
                    ComparisonClause(aggregate.column, Comparator.EQ, aggregate_value),
                )
            ),
        ),
    )
    return backend.execute(lookup)


def run_query(backend: RelationalBackend, compiled_query: CompiledQuery) -> Result:
    """Execute a compiled query against the backend.

    Args:
        backend: the relational backend to run the query with
        compiled_query: a FilteredScan, or the AggregatePlan of a MIN/MAX query

    Returns:
        Success holding the list of result rows, or a backend Failure
    """
    try:
        if isinstance(compiled_query, AggregatePlan):
            rows = _run_aggregate_plan(backend, compiled_query)
        else:
            rows = backend.execute(compiled_query)
    except BackendError as e:
        return Failure.from_exception(e)
    return Success(rows)


def run_raw_query(
    backend: RelationalBackend,
    table: str,
    raw_query: Optional[Union[str, Mapping[str, Any]]],
    table_schema: Optional[TableSchema],
    config: CrudConfig,
) -> Result:
    """Translate, validate, compile and run a client query against a table.

    Args:
        backend: the relational backend to run the query with
        table: name of the table to query
        raw_query: a URL query string, a LoopBack-style filter, a canonical query object,
                   or None to read every row
        table_schema: the cached schema of the table, used to rewrite clause values
        config: configuration naming the dialect and the value conventions in use

    Returns:
        Success holding the list of result rows, or the Failure of the first stage that failed
    """
    try:
        canonical_query = parse_raw_query(raw_query)
    except TranslationError as e:
        return Failure.from_exception(e)

    validation_result = validate_query(canonical_query)
    if is_failure(validation_result):
        return validation_result

    compilation_result = compile_query(table, validation_result.value, table_schema, config)
    if is_failure(compilation_result):
        return compilation_result

    return run_query(backend, compilation_result.value)

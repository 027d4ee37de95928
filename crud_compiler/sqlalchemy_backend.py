# Copyright 2021-present Kensho Technologies, LLC.
"""Execute relational operations with the SQLAlchemy Core expression language.

Tables and columns are referenced through the lightweight table() and column() constructs, so no
metadata reflection is needed: the schema cache already knows what each table looks like.
Values are always sent as bound parameters, except raw date literals, which are inlined.
"""
import logging
import operator
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import (
    and_,
    column,
    delete,
    func,
    insert,
    literal_column,
    not_,
    or_,
    select,
    table,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import ClauseElement, TableClause

from .backend import OperationResult, RelationalBackend, Row
from .compiler.operations import (
    AggregateQuery,
    AndWhereStep,
    DeleteAllRows,
    DeleteRows,
    FilteredScan,
    InsertRow,
    LimitStep,
    Operation,
    OrderStep,
    OrWhereInStep,
    OrWhereStep,
    RawQuery,
    SelectStep,
    StarterStep,
    TableScan,
    UpdateRows,
)
from .exceptions import BackendError
from .query_object import (
    BetweenClause,
    Clause,
    Comparator,
    ComparisonClause,
    InClause,
    LikeClause,
    QueryKey,
    SortDirection,
)
from .type_coercion import DateLiteral


logger = logging.getLogger(__name__)

_COMPARATOR_TO_OPERATOR: Dict[Comparator, Callable[[Any, Any], Any]] = {
    Comparator.EQ: operator.eq,
    Comparator.GT: operator.gt,
    Comparator.LT: operator.lt,
}

_AGGREGATE_FUNCTIONS = {
    QueryKey.MIN: func.min,
    QueryKey.MAX: func.max,
}


def _to_sql_value(value: Any) -> Any:
    """Return the value to bind, or the SQL expression to inline for raw date literals."""
    if isinstance(value, DateLiteral):
        if value.raw:
            return literal_column(value.text)
        return value.text
    return value


def _to_sql_values(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the record with every value converted by _to_sql_value."""
    return {key: _to_sql_value(value) for key, value in record.items()}


def _clause_to_expression(clause: Clause) -> ClauseElement:
    """Turn a clause into the equivalent SQLAlchemy boolean expression."""
    clause_column = column(clause.column)
    if isinstance(clause, ComparisonClause):
        return _COMPARATOR_TO_OPERATOR[clause.comparator](
            clause_column, _to_sql_value(clause.value)
        )
    elif isinstance(clause, LikeClause):
        return clause_column.like(clause.value)
    elif isinstance(clause, InClause):
        return clause_column.in_([_to_sql_value(value) for value in clause.values])
    elif isinstance(clause, BetweenClause):
        return clause_column.between(_to_sql_value(clause.low), _to_sql_value(clause.high))
    else:
        raise AssertionError(f"Unreachable code reached: unknown clause type {clause!r}.")


class SQLAlchemyBackend(RelationalBackend):
    """Relational backend executing operations through a SQLAlchemy engine."""

    def __init__(self, engine: Engine, schema: Optional[str] = None) -> None:
        """Create a backend running every operation in its own transaction on the engine.

        Args:
            engine: SQLAlchemy engine connected to the database
            schema: optional schema (Oracle owner, MySQL database) qualifying every table name
        """
        self._engine = engine
        self._schema = schema

    def _make_table(self, table_name: str, column_names: Iterable[str] = ()) -> TableClause:
        """Return a lightweight table construct with the given columns."""
        return table(table_name, *(column(name) for name in column_names), schema=self._schema)

    def _supports_returning(self) -> bool:
        """Return True if the engine's dialect supports INSERT ... RETURNING."""
        dialect = self._engine.dialect
        insert_returning = getattr(dialect, "insert_returning", None)
        if insert_returning is None:
            insert_returning = getattr(dialect, "full_returning", False)
        return bool(insert_returning)

    ######
    # Statement construction
    ######

    def _make_scan_statement(self, operation: FilteredScan) -> ClauseElement:
        """Build the SELECT statement of a filtered scan from its chain of steps."""
        selected_columns: List[ClauseElement] = [literal_column("*")]
        condition: Optional[ClauseElement] = None
        limit: Optional[int] = None
        order_by: List[ClauseElement] = []

        for step in operation.steps:
            if isinstance(step, SelectStep):
                selected_columns = [column(name) for name in step.columns]
            elif isinstance(step, StarterStep):
                condition = _clause_to_expression(step.starter.clause)
                if step.starter.is_negated:
                    condition = not_(condition)
            elif isinstance(step, AndWhereStep):
                expression = _clause_to_expression(step.clause)
                condition = expression if condition is None else and_(condition, expression)
            elif isinstance(step, (OrWhereStep, OrWhereInStep)):
                expression = _clause_to_expression(step.clause)
                condition = expression if condition is None else or_(condition, expression)
            elif isinstance(step, LimitStep):
                limit = step.limit
            elif isinstance(step, OrderStep):
                order_by = [
                    column(term.column).desc()
                    if term.direction == SortDirection.DESC
                    else column(term.column).asc()
                    for term in step.terms
                ]
            else:
                raise AssertionError(f"Unreachable code reached: unknown step {step!r}.")

        statement = select(*selected_columns).select_from(self._make_table(operation.table))
        if condition is not None:
            statement = statement.where(condition)
        if order_by:
            statement = statement.order_by(*order_by)
        if limit is not None:
            statement = statement.limit(limit)
        return statement

    def _make_table_scan_statement(self, operation: TableScan) -> ClauseElement:
        """Build the SELECT statement of an unfiltered table scan."""
        if operation.columns:
            selected_columns = [column(name) for name in operation.columns]
        else:
            selected_columns = [literal_column("*")]
        statement = select(*selected_columns).select_from(self._make_table(operation.table))
        if operation.limit is not None:
            statement = statement.limit(operation.limit)
        return statement

    def _make_aggregate_statement(self, operation: AggregateQuery) -> ClauseElement:
        """Build the SELECT statement computing a MIN or MAX."""
        aggregate_function = _AGGREGATE_FUNCTIONS[operation.function]
        return select(
            aggregate_function(column(operation.column)).label(operation.function.value)
        ).select_from(self._make_table(operation.table))

    ######
    # Execution
    ######

    def _fetch_rows(
        self, statement: ClauseElement, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Row]:
        """Execute a statement in its own transaction and return its rows as dicts."""
        with self._engine.begin() as connection:
            result = connection.execute(statement, parameters or {})
            return [dict(row._mapping) for row in result]  # pylint: disable=protected-access

    def _count_affected_rows(self, statement: ClauseElement) -> int:
        """Execute a statement in its own transaction and return the number of affected rows."""
        with self._engine.begin() as connection:
            return connection.execute(statement).rowcount

    def _insert_row(self, operation: InsertRow) -> Any:
        """Insert the record and return the id of the new row."""
        column_names = list(operation.record)
        if operation.id_column is not None and operation.id_column not in operation.record:
            column_names.append(operation.id_column)
        target_table = self._make_table(operation.table, column_names)
        statement = insert(target_table).values(_to_sql_values(operation.record))

        if operation.id_column is not None and operation.id_column in operation.record:
            with self._engine.begin() as connection:
                connection.execute(statement)
            return operation.record[operation.id_column]

        with self._engine.begin() as connection:
            if operation.id_column is not None and self._supports_returning():
                result = connection.execute(
                    statement.returning(target_table.c[operation.id_column])
                )
                return result.scalar()
            return connection.execute(statement).lastrowid

    def execute(self, operation: Operation) -> OperationResult:
        """Execute the operation with SQLAlchemy, converting engine failures to BackendError."""
        logger.debug("Executing operation %s", operation)
        try:
            return self._execute(operation)
        except SQLAlchemyError as e:
            raise BackendError(f"{type(operation).__name__} on the database failed: {e}") from e

    def _execute(self, operation: Operation) -> OperationResult:
        """Dispatch the operation to the method executing its kind."""
        if isinstance(operation, FilteredScan):
            return self._fetch_rows(self._make_scan_statement(operation))
        elif isinstance(operation, TableScan):
            return self._fetch_rows(self._make_table_scan_statement(operation))
        elif isinstance(operation, AggregateQuery):
            return self._fetch_rows(self._make_aggregate_statement(operation))
        elif isinstance(operation, RawQuery):
            return self._fetch_rows(text(operation.sql), operation.parameters)
        elif isinstance(operation, InsertRow):
            return self._insert_row(operation)
        elif isinstance(operation, UpdateRows):
            target_table = self._make_table(operation.table, operation.record)
            return self._count_affected_rows(
                update(target_table)
                .where(_clause_to_expression(operation.predicate))
                .values(_to_sql_values(operation.record))
            )
        elif isinstance(operation, DeleteRows):
            return self._count_affected_rows(
                delete(self._make_table(operation.table)).where(
                    _clause_to_expression(operation.predicate)
                )
            )
        elif isinstance(operation, DeleteAllRows):
            return self._count_affected_rows(delete(self._make_table(operation.table)))
        else:
            raise AssertionError(f"Unreachable code reached: unknown operation {operation!r}.")


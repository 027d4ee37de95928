# Copyright 2021-present Kensho Technologies, LLC.
"""The CRUD entry point a web layer calls: reads, writes and schema lookups on named tables.

Every operation resolves the table's schema through the schema cache, converts written records
to their storage representation and read rows to their wire representation, and reports any
failure as the exception of its kind, prefixed with a description of the failed operation.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .backend import RelationalBackend, Row
from .compiler.compiler_frontend import rewrite_clause
from .compiler.operations import (
    DeleteAllRows,
    DeleteRows,
    FilteredScan,
    InsertRow,
    Operation,
    SelectStep,
    StarterStep,
    TableScan,
    UpdateRows,
)
from .config import CrudConfig
from .exceptions import CrudCompilerError
from .query_object import ChainStarter, Comparator, ComparisonClause, QueryKey
from .query_parsing.query_string import VALUE_SEPARATOR
from .query_running import run_raw_query
from .schema.schema_cache import SchemaCache
from .schema.table_schema import ColumnCategory, SchemaCatalog, TableSchema
from .type_coercion import (
    to_server_boolean,
    to_server_buffer,
    to_server_timestamp,
    to_storage_boolean,
    to_storage_buffer,
    to_storage_timestamp,
)
from .typedefs import Failure, Result, Success, is_failure


ClientQuery = Optional[Union[str, Mapping[str, Any]]]


def _unwrap(result: Result, prefix: str) -> Any:
    """Return the value of a successful result, or raise the failure with the given prefix."""
    if isinstance(result, Failure):
        raise result.to_exception(prefix)
    return result.value


def _capture_failure(function: Callable[[], Any]) -> Result:
    """Call the function, returning its value as a Success or its pipeline error as a Failure."""
    try:
        return Success(function())
    except CrudCompilerError as e:
        return Failure.from_exception(e)


def _parse_select(select: Optional[Union[str, Sequence[str]]]) -> List[str]:
    """Return the selected columns, given as a sequence or as a comma-joined string."""
    if not select:
        return []
    if isinstance(select, str):
        return [column.strip() for column in select.split(VALUE_SEPARATOR) if column.strip()]
    return list(select)


class CrudFacade:
    """Create, read, update and delete rows of the tables of one schema."""

    def __init__(
        self,
        config: CrudConfig,
        backend: RelationalBackend,
        schema_cache: Optional[SchemaCache] = None,
    ) -> None:
        """Create a facade over the backend.

        Args:
            config: configuration naming the dialect, the schema and the value conventions
            backend: the relational backend that runs every operation
            schema_cache: optional schema cache to share between facades. By default, a new
                          cache over the same config and backend is created.
        """
        self._config = config
        self._backend = backend
        if schema_cache is None:
            schema_cache = SchemaCache(config, backend)
        self._schema_cache = schema_cache

    ######
    # Value conversion
    ######

    def _convert_row_for_server(self, row: Mapping[str, Any], table_schema: TableSchema) -> Row:
        """Convert the values of a row read from the engine to their wire representation."""
        converted_row = {}
        for column_name, value in row.items():
            category = table_schema.get_column_category(column_name)
            if category == ColumnCategory.BOOLEAN:
                value = to_server_boolean(value, self._config)
            elif category == ColumnCategory.TIMESTAMP:
                value = to_server_timestamp(value)
            elif category == ColumnCategory.BUFFER:
                value = to_server_buffer(value)
            converted_row[column_name] = value
        return converted_row

    def _convert_rows_for_server(
        self, rows: Sequence[Mapping[str, Any]], table_schema: TableSchema
    ) -> List[Row]:
        """Convert every row read from the engine to its wire representation."""
        return [self._convert_row_for_server(row, table_schema) for row in rows]

    def _convert_record_for_storage(
        self, record: Mapping[str, Any], table_schema: TableSchema
    ) -> Dict[str, Any]:
        """Convert the values of a record to the representation the engine stores.

        Raises:
            CoercionError: if a timestamp or buffer value is malformed
        """
        converted_record = {}
        for column_name, value in record.items():
            category = table_schema.get_column_category(column_name)
            if value is None:
                pass
            elif category == ColumnCategory.BOOLEAN:
                value = to_storage_boolean(value, self._config)
            elif category == ColumnCategory.TIMESTAMP:
                value = to_storage_timestamp(value, self._config)
            elif category == ColumnCategory.BUFFER:
                value = to_storage_buffer(value)
            converted_record[column_name] = value
        return converted_record

    def _make_id_predicate(
        self, id_column: str, id_value: Any, table_schema: TableSchema
    ) -> ComparisonClause:
        """Return the clause matching the rows whose id column equals the id value."""
        predicate = rewrite_clause(
            ComparisonClause(id_column, Comparator.EQ, id_value), table_schema, self._config
        )
        if not isinstance(predicate, ComparisonClause):
            raise AssertionError(f"Rewriting changed the type of the id predicate: {predicate}.")
        return predicate

    ######
    # Pipeline steps returning results
    ######

    def _read(self, table: str, make_operation: Callable[[TableSchema], Operation]) -> Result:
        """Run the read operation built from the table's schema, converting the rows it returns."""
        schema_result = _capture_failure(lambda: self._schema_cache.get_table_schema(table))
        if is_failure(schema_result):
            return schema_result
        table_schema = schema_result.value

        rows_result = _capture_failure(
            lambda: self._backend.execute(make_operation(table_schema))
        )
        if is_failure(rows_result):
            return rows_result
        return Success(self._convert_rows_for_server(rows_result.value, table_schema))

    def _write(self, table: str, make_operation: Callable[[TableSchema], Operation]) -> Result:
        """Run the write operation built from the table's schema, returning its result as is."""
        schema_result = _capture_failure(lambda: self._schema_cache.get_table_schema(table))
        if is_failure(schema_result):
            return schema_result
        table_schema = schema_result.value

        return _capture_failure(lambda: self._backend.execute(make_operation(table_schema)))

    ######
    # Reads
    ######

    def get_list(self, table: str, raw_query: ClientQuery = None) -> List[Row]:
        """Return the rows of the table matching the query.

        Args:
            table: name of the table to read
            raw_query: a URL query string, a LoopBack-style filter, a canonical query object,
                       or None to read every row

        Returns:
            list of rows, each a dict mapping column name to value

        Raises:
            CrudCompilerError: the subclass matching the failed step, if the query cannot be
                               translated, validated, compiled or run
        """
        prefix = f"Failed to get list of items from table {table}"
        schema_result = _capture_failure(lambda: self._schema_cache.get_table_schema(table))
        table_schema = _unwrap(schema_result, prefix)

        rows = _unwrap(
            run_raw_query(self._backend, table, raw_query, table_schema, self._config), prefix
        )
        return self._convert_rows_for_server(rows, table_schema)

    def get_item(
        self,
        table: str,
        id_column: str,
        id_value: Any,
        select: Optional[Union[str, Sequence[str]]] = None,
    ) -> List[Row]:
        """Return the rows of the table whose id column equals the id value.

        Args:
            table: name of the table to read
            id_column: name of the column identifying the item
            id_value: value of the id column of the item
            select: optional columns to return, as a sequence or a comma-joined string

        Returns:
            list of matching rows, each a dict mapping column name to value
        """
        selected_columns = _parse_select(select)

        def make_operation(table_schema: TableSchema) -> Operation:
            starter = ChainStarter(
                QueryKey.WHERE, self._make_id_predicate(id_column, id_value, table_schema)
            )
            if selected_columns:
                return FilteredScan(
                    table, (SelectStep(tuple(selected_columns)), StarterStep(starter))
                )
            return FilteredScan(table, (StarterStep(starter),))

        return _unwrap(
            self._read(table, make_operation),
            f"Failed to get item {id_value} from table {table}",
        )

    def get_first_item(self, table: str) -> List[Row]:
        """Return a list holding the first row of the table, or an empty list if it has none."""
        return _unwrap(
            self._read(table, lambda _: TableScan(table, limit=1)),
            f"Failed to get first item from table {table}",
        )

    ######
    # Writes
    ######

    def add_item(self, table: str, record: Mapping[str, Any]) -> Any:
        """Insert the record into the table and return the id of the new row."""

        def make_operation(table_schema: TableSchema) -> Operation:
            return InsertRow(
                table,
                self._convert_record_for_storage(record, table_schema),
                id_column=table_schema.id_column,
            )

        return _unwrap(self._write(table, make_operation), f"Failed to add item to table {table}")

    def edit_item(
        self, table: str, id_column: str, id_value: Any, record: Mapping[str, Any]
    ) -> int:
        """Update the rows whose id column equals the id value, returning their count."""

        def make_operation(table_schema: TableSchema) -> Operation:
            return UpdateRows(
                table,
                self._make_id_predicate(id_column, id_value, table_schema),
                self._convert_record_for_storage(record, table_schema),
            )

        return _unwrap(
            self._write(table, make_operation),
            f"Failed to edit item {id_value} in table {table}",
        )

    def delete_item(self, table: str, id_column: str, id_value: Any) -> int:
        """Delete the rows whose id column equals the id value, returning their count."""

        def make_operation(table_schema: TableSchema) -> Operation:
            return DeleteRows(table, self._make_id_predicate(id_column, id_value, table_schema))

        return _unwrap(
            self._write(table, make_operation),
            f"Failed to delete item {id_value} from table {table}",
        )

    def delete_all(self, table: str) -> int:
        """Delete every row of the table, returning their count."""
        return _unwrap(
            self._write(table, lambda _: DeleteAllRows(table)),
            f"Failed to delete all items from table {table}",
        )

    ######
    # Schema
    ######

    def get_table_schema(self, table: str, overwrite: bool = False) -> TableSchema:
        """Return the cached schema of the table, discovering it first if needed or requested."""
        return _unwrap(
            _capture_failure(lambda: self._schema_cache.get_table_schema(table, overwrite)),
            f"Failed to get schema of table {table}",
        )

    def get_tables_config(self, overwrite: bool = False) -> SchemaCatalog:
        """Return the catalog of every table in the schema, rebuilding it if needed or requested."""
        return _unwrap(
            _capture_failure(lambda: self._schema_cache.get_tables_config(overwrite)),
            f"Failed to get tables config of schema {self._config.schema_name}",
        )

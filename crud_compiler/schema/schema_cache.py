# Copyright 2021-present Kensho Technologies, LLC.
"""Discover table schemas through the backend, and persist them in a JSON catalog file.

The catalog file is the only shared state. It is always rewritten wholesale: a new catalog is
written to a temporary file in the same directory, which then atomically replaces the old one.
Discovery of a table is serialized per table, and every read-modify-write of the catalog file
is serialized by a single catalog lock. Each discovery is stamped with an increasing generation
when it starts, and a catalog rebuild never replaces a persisted schema from a later generation.
"""
import itertools
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional, Tuple

from funcy import first

from ..backend import RelationalBackend
from ..compiler.operations import Operation, RawQuery, TableScan
from ..config import CrudConfig
from ..exceptions import BackendError, CatalogError, DiscoveryError
from ..global_utils import get_case_insensitive
from .column_classification import COLUMN_NAME_LABEL, ColumnInfo, classify_column
from .table_schema import ColumnCategory, SchemaCatalog, TableSchema


logger = logging.getLogger(__name__)

TABLE_NAME_LABEL = "TABLE_NAME"

_TEMPORARY_CATALOG_SUFFIX = ".tmp"


class SchemaCache:
    """Cache of the TableSchema of each table, persisted in the configured catalog file."""

    def __init__(self, config: CrudConfig, backend: RelationalBackend) -> None:
        """Create a schema cache discovering tables through the given backend.

        Args:
            config: configuration naming the dialect, the schema whose tables are discovered,
                    the catalog file location and the boolean conventions
            backend: the relational backend that runs introspection queries
        """
        self._config = config
        self._backend = backend
        self._catalog_lock = threading.Lock()
        self._table_locks: Dict[str, threading.Lock] = {}
        self._table_locks_guard = threading.Lock()
        self._generation_counter = itertools.count()
        self._persisted_generations: Dict[str, int] = {}

    def _get_table_lock(self, table_name: str) -> threading.Lock:
        """Return the lock serializing discovery of the given table."""
        with self._table_locks_guard:
            return self._table_locks.setdefault(table_name, threading.Lock())

    def _next_generation(self) -> int:
        """Return a discovery generation later than every one handed out before."""
        with self._table_locks_guard:
            return next(self._generation_counter)

    ######
    # Catalog persistence
    ######

    def load_catalog(self) -> SchemaCatalog:
        """Read the persisted catalog. A missing catalog file is an empty catalog.

        Raises:
            CatalogError: if the catalog file cannot be read or does not hold a valid catalog
        """
        catalog_path = self._config.catalog_path
        if not os.path.exists(catalog_path):
            return SchemaCatalog()

        try:
            with open(catalog_path, "r", encoding="utf-8") as catalog_file:
                catalog_data = json.load(catalog_file)
        except (OSError, ValueError) as e:
            raise CatalogError(f"Failed to read the schema catalog at {catalog_path}: {e}") from e
        return SchemaCatalog.from_json_dict(catalog_data)

    def save_catalog(self, catalog: SchemaCatalog) -> None:
        """Atomically replace the persisted catalog with the given one.

        Raises:
            CatalogError: if the catalog file cannot be written
        """
        catalog_path = os.path.abspath(self._config.catalog_path)
        catalog_directory = os.path.dirname(catalog_path)
        temporary_path: Optional[str] = None
        try:
            file_descriptor, temporary_path = tempfile.mkstemp(
                dir=catalog_directory,
                prefix=os.path.basename(catalog_path) + ".",
                suffix=_TEMPORARY_CATALOG_SUFFIX,
            )
            with os.fdopen(file_descriptor, "w", encoding="utf-8") as catalog_file:
                json.dump(catalog.to_json_dict(), catalog_file, indent=2)
            os.replace(temporary_path, catalog_path)
        except (OSError, TypeError, ValueError) as e:
            if temporary_path is not None and os.path.exists(temporary_path):
                os.remove(temporary_path)
            raise CatalogError(f"Failed to write the schema catalog at {catalog_path}: {e}") from e

    ######
    # Discovery
    ######

    def _run_discovery_operation(self, operation: Operation, table_name: str) -> List[Any]:
        """Execute an introspection operation, reporting backend failures as discovery failures."""
        try:
            return self._backend.execute(operation)
        except BackendError as e:
            raise DiscoveryError(f"Failed to introspect table {table_name}: {e}") from e

    def _get_primary_key_column(self, table_name: str) -> Optional[str]:
        """Return the first primary key column of the table, or None if it has no primary key."""
        primary_key_rows = self._run_discovery_operation(
            RawQuery(
                self._config.dialect.primary_key_query,
                {"schema_name": self._config.schema_name, "table_name": table_name},
            ),
            table_name,
        )
        primary_key_row = first(primary_key_rows)
        if primary_key_row is None:
            logger.warning(
                "Table %s in schema %s has no primary key. Its schema will have no id column.",
                table_name,
                self._config.schema_name,
            )
            return None
        return get_case_insensitive(primary_key_row, COLUMN_NAME_LABEL)

    def discover_table_schema(self, table_name: str) -> TableSchema:
        """Introspect the table and classify each of its columns.

        Raises:
            DiscoveryError: if the introspection queries fail, or the table has no columns
        """
        column_rows = self._run_discovery_operation(
            RawQuery(
                self._config.dialect.columns_query,
                {"schema_name": self._config.schema_name, "table_name": table_name},
            ),
            table_name,
        )
        if not column_rows:
            raise DiscoveryError(
                f"Table {table_name} has no columns in schema {self._config.schema_name}. "
                f"Check that the table exists and is visible to the connected user."
            )

        id_column = self._get_primary_key_column(table_name)
        sample_rows = self._run_discovery_operation(TableScan(table_name, limit=1), table_name)
        sample_row = first(sample_rows)

        column_categories: Dict[str, ColumnCategory] = {}
        for column_row in column_rows:
            column_info = ColumnInfo.from_row(column_row)
            column_categories[column_info.name] = classify_column(
                column_info, self._config, sample_row
            )
        return TableSchema.from_columns(table_name, column_categories, id_column)

    def _enumerate_table_names(self) -> List[str]:
        """Return the names of every table, and view where the dialect has them, in the schema."""
        dialect = self._config.dialect
        queries = [dialect.tables_query]
        if dialect.views_query is not None:
            queries.append(dialect.views_query)

        table_names: List[str] = []
        for query in queries:
            try:
                rows = self._backend.execute(
                    RawQuery(query, {"schema_name": self._config.schema_name})
                )
            except BackendError as e:
                raise DiscoveryError(
                    f"Failed to enumerate the tables of schema {self._config.schema_name}: {e}"
                ) from e
            for row in rows:
                table_name = get_case_insensitive(row, TABLE_NAME_LABEL)
                if table_name not in table_names:
                    table_names.append(table_name)
        return table_names

    ######
    # Public API
    ######

    def get_table_schema(self, table_name: str, overwrite: bool = False) -> TableSchema:
        """Return the schema of the table, discovering and persisting it if needed.

        Args:
            table_name: name of the table
            overwrite: if True, discover the table again even if its schema is cached

        Returns:
            TableSchema of the table

        Raises:
            DiscoveryError: if the table has to be discovered and discovery fails
            CatalogError: if the catalog file cannot be read or written
        """
        with self._get_table_lock(table_name):
            if not overwrite:
                with self._catalog_lock:
                    cached_schema = self.load_catalog().get(table_name)
                if cached_schema is not None:
                    return cached_schema

            generation = self._next_generation()
            table_schema = self.discover_table_schema(table_name)
            with self._catalog_lock:
                catalog = self.load_catalog()
                catalog.put(table_schema)
                self.save_catalog(catalog)
                self._persisted_generations[table_name] = generation

        logger.info("Cached the schema of table %s.", table_name)
        return table_schema

    def get_tables_config(self, overwrite: bool = False) -> SchemaCatalog:
        """Return the catalog of every table in the schema, building it if needed.

        A persisted catalog is completed with the schemas of any listed tables it lacks.
        Without a persisted catalog, or when overwriting, every table (and, on dialects that
        have them, every view) of the schema is enumerated and discovered anew.

        Args:
            overwrite: if True, rebuild the catalog from scratch. Schemas refreshed by
                       get_table_schema while the rebuild runs are kept.

        Returns:
            SchemaCatalog holding every table of the schema

        Raises:
            DiscoveryError: if enumerating or discovering the tables fails
            CatalogError: if the catalog file cannot be read or written
        """
        if not overwrite:
            with self._catalog_lock:
                catalog = self.load_catalog()
            if catalog.tables:
                missing_tables = [name for name in catalog.tables if catalog.get(name) is None]
                for table_name in missing_tables:
                    catalog.put(self.get_table_schema(table_name))
                if missing_tables:
                    with self._catalog_lock:
                        catalog = self.load_catalog()
                return catalog

        rebuild_generation = self._next_generation()
        table_names = self._enumerate_table_names()
        discovered: Dict[str, Tuple[int, TableSchema]] = {}
        for table_name in table_names:
            with self._get_table_lock(table_name):
                generation = self._next_generation()
                discovered[table_name] = (generation, self.discover_table_schema(table_name))

        with self._catalog_lock:
            persisted_catalog = self.load_catalog()
            catalog = SchemaCatalog(tables=list(table_names))
            replaced_generations: Dict[str, int] = {}
            for table_name, (generation, table_schema) in discovered.items():
                persisted_schema = persisted_catalog.get(table_name)
                if (
                    persisted_schema is not None
                    and self._persisted_generations.get(table_name, -1) > generation
                ):
                    # Refreshed concurrently after this rebuild discovered it.
                    catalog.put(persisted_schema)
                else:
                    catalog.put(table_schema)
                    replaced_generations[table_name] = generation

            # Tables cached concurrently while the rebuild was running.
            for table_name, table_schema in persisted_catalog.schemas.items():
                if (
                    table_name not in discovered
                    and self._persisted_generations.get(table_name, -1) > rebuild_generation
                ):
                    catalog.put(table_schema)

            self.save_catalog(catalog)
            self._persisted_generations.update(replaced_generations)
        logger.info(
            "Rebuilt the schema catalog of schema %s with %d tables.",
            self._config.schema_name,
            len(catalog.tables),
        )
        return catalog

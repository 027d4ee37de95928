# Copyright 2021-present Kensho Technologies, LLC.
"""The cached classification of each table's columns, and the catalog persisting it."""
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..exceptions import CatalogError


@unique
class ColumnCategory(Enum):
    """The semantic categories columns are classified into. Each column has exactly one."""

    NUMBER = "number"
    BUFFER = "buffer"
    TIMESTAMP = "timestamp"
    BOOLEAN = "boolean"
    STRING = "string"


@unique
class IdType(Enum):
    """The type of a table's id column."""

    NUMBER = "number"
    STRING = "string"


# Keys of a serialized TableSchema, and the category each column list belongs to.
_CATEGORY_TO_SERIALIZED_KEY = {
    ColumnCategory.BOOLEAN: "booleanColumns",
    ColumnCategory.BUFFER: "bufferColumns",
    ColumnCategory.TIMESTAMP: "timestampColumns",
    ColumnCategory.NUMBER: "numberColumns",
    ColumnCategory.STRING: "stringColumns",
}
_NAME_KEY = "name"
_ID_COLUMN_KEY = "idColumn"
_ID_TYPE_KEY = "idType"
_TABLES_KEY = "tables"
_SCHEMAS_KEY = "schemas"


@dataclass(frozen=True)
class TableSchema:
    """The columns of a table, partitioned by semantic category, and its id column."""

    name: str
    id_column: Optional[str] = None
    id_type: Optional[IdType] = None
    boolean_columns: Tuple[str, ...] = ()
    buffer_columns: Tuple[str, ...] = ()
    timestamp_columns: Tuple[str, ...] = ()
    number_columns: Tuple[str, ...] = ()
    string_columns: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate that the column categories partition the columns."""
        seen_columns: Dict[str, ColumnCategory] = {}
        for category in ColumnCategory:
            for column in self.get_columns(category):
                if column in seen_columns:
                    raise AssertionError(
                        f"Column {column} of table {self.name} is classified as both "
                        f"{seen_columns[column].value} and {category.value}."
                    )
                seen_columns[column] = category

    def get_columns(self, category: ColumnCategory) -> Tuple[str, ...]:
        """Return the columns of the given category."""
        return {
            ColumnCategory.BOOLEAN: self.boolean_columns,
            ColumnCategory.BUFFER: self.buffer_columns,
            ColumnCategory.TIMESTAMP: self.timestamp_columns,
            ColumnCategory.NUMBER: self.number_columns,
            ColumnCategory.STRING: self.string_columns,
        }[category]

    def get_column_category(self, column: str) -> Optional[ColumnCategory]:
        """Return the category of the column, or None if the table has no such column.

        Column names are matched exactly first, then ignoring case, since some drivers report
        case-insensitive column names in lowercase.
        """
        for category in ColumnCategory:
            if column in self.get_columns(category):
                return category

        lowered_column = column.lower()
        for category in ColumnCategory:
            if any(name.lower() == lowered_column for name in self.get_columns(category)):
                return category
        return None

    @property
    def all_columns(self) -> Tuple[str, ...]:
        """Return every column of the table."""
        return tuple(column for category in ColumnCategory for column in self.get_columns(category))

    @classmethod
    def from_columns(
        cls,
        name: str,
        column_categories: Mapping[str, ColumnCategory],
        id_column: Optional[str] = None,
    ) -> "TableSchema":
        """Build the schema of a table from the category of each of its columns, in order."""
        columns_by_category: Dict[ColumnCategory, List[str]] = {
            category: [] for category in ColumnCategory
        }
        for column, category in column_categories.items():
            columns_by_category[category].append(column)

        id_type = None
        if id_column is not None:
            if column_categories.get(id_column) == ColumnCategory.NUMBER:
                id_type = IdType.NUMBER
            else:
                id_type = IdType.STRING

        return cls(
            name=name,
            id_column=id_column,
            id_type=id_type,
            boolean_columns=tuple(columns_by_category[ColumnCategory.BOOLEAN]),
            buffer_columns=tuple(columns_by_category[ColumnCategory.BUFFER]),
            timestamp_columns=tuple(columns_by_category[ColumnCategory.TIMESTAMP]),
            number_columns=tuple(columns_by_category[ColumnCategory.NUMBER]),
            string_columns=tuple(columns_by_category[ColumnCategory.STRING]),
        )

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize the schema into the JSON form stored in the catalog file."""
        result: Dict[str, Any] = {
            _NAME_KEY: self.name,
            _ID_COLUMN_KEY: self.id_column,
            _ID_TYPE_KEY: None if self.id_type is None else self.id_type.value,
        }
        for category, serialized_key in _CATEGORY_TO_SERIALIZED_KEY.items():
            result[serialized_key] = list(self.get_columns(category))
        return result

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> "TableSchema":
        """Deserialize a schema from the JSON form stored in the catalog file."""
        try:
            raw_id_type = data.get(_ID_TYPE_KEY)
            columns = {
                category: tuple(data.get(serialized_key) or ())
                for category, serialized_key in _CATEGORY_TO_SERIALIZED_KEY.items()
            }
            return cls(
                name=data[_NAME_KEY],
                id_column=data.get(_ID_COLUMN_KEY),
                id_type=None if raw_id_type is None else IdType(raw_id_type),
                boolean_columns=columns[ColumnCategory.BOOLEAN],
                buffer_columns=columns[ColumnCategory.BUFFER],
                timestamp_columns=columns[ColumnCategory.TIMESTAMP],
                number_columns=columns[ColumnCategory.NUMBER],
                string_columns=columns[ColumnCategory.STRING],
            )
        except (KeyError, TypeError, ValueError, AssertionError) as e:
            raise CatalogError(f"Malformed table schema in the catalog: {data!r}") from e


@dataclass
class SchemaCatalog:
    """The persisted root of the schema cache: the known tables and their schemas."""

    tables: List[str] = field(default_factory=list)
    schemas: Dict[str, TableSchema] = field(default_factory=dict)

    def get(self, table_name: str) -> Optional[TableSchema]:
        """Return the cached schema of the table, if any."""
        return self.schemas.get(table_name)

    def put(self, table_schema: TableSchema) -> None:
        """Add or replace the schema of a table."""
        if table_schema.name not in self.tables:
            self.tables.append(table_schema.name)
        self.schemas[table_schema.name] = table_schema

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize the catalog into the JSON form stored in the catalog file."""
        return {
            _TABLES_KEY: list(self.tables),
            _SCHEMAS_KEY: [table_schema.to_json_dict() for table_schema in self.schemas.values()],
        }

    @classmethod
    def from_json_dict(cls, data: Any) -> "SchemaCatalog":
        """Deserialize a catalog from the JSON form stored in the catalog file."""
        if not isinstance(data, Mapping):
            raise CatalogError(f"Expected the catalog to be a JSON object, but got {data!r}.")

        catalog = cls()
        for table_name in data.get(_TABLES_KEY) or ():
            if table_name not in catalog.tables:
                catalog.tables.append(table_name)
        for raw_schema in data.get(_SCHEMAS_KEY) or ():
            catalog.put(TableSchema.from_json_dict(raw_schema))
        return catalog

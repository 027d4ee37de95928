# Copyright 2021-present Kensho Technologies, LLC.
"""The SQL dialects the compiler supports, and everything that differs between them.

The two dialects differ only in the names of their native column types, in the raw SQL text
used to introspect tables, and in the syntax of date literals. Everything else the compiler emits
is dialect-neutral and left to SQLAlchemy.
"""
from dataclasses import dataclass
import re
from typing import FrozenSet, Optional


_TYPE_PRECISION_PATTERN = re.compile(r"\(.*?\)")

ORACLE_DIALECT_NAME = "oracle"
MYSQL_DIALECT_NAME = "mysql"


@dataclass(frozen=True)
class Dialect:
    """Native type names, introspection queries and date syntax of one SQL dialect."""

    name: str

    # Native type names, uppercase and without precision, of each column category.
    number_types: FrozenSet[str]
    buffer_types: FrozenSet[str]
    timestamp_types: FrozenSet[str]

    # The native type that carries sentinel-encoded booleans, when declared with length 1.
    boolean_native_type: str

    # Raw introspection queries. All of them take the :schema_name bind parameter, and the
    # column and primary key queries also take :table_name. Column labels are normalized
    # to COLUMN_NAME, DATA_TYPE, DATA_LENGTH and TABLE_NAME.
    columns_query: str
    primary_key_query: str
    tables_query: str
    views_query: Optional[str]

    # strftime-like templates filled with the DD, MON, MM, YYYY, HH, MI and SS components.
    timestamp_literal_template: str
    date_literal_template: str

    # Raw date-construction expressions, or None if the dialect compares against plain literals.
    raw_timestamp_template: Optional[str]
    raw_date_template: Optional[str]


def normalize_native_type_name(native_type: str) -> str:
    """Return the uppercase native type name with any precision or length suffix removed.

    For example, "timestamp(6)" becomes "TIMESTAMP" and "varchar2(20 byte)" becomes "VARCHAR2".
    """
    return _TYPE_PRECISION_PATTERN.sub("", native_type).strip().upper()


ORACLE = Dialect(
    name=ORACLE_DIALECT_NAME,
    number_types=frozenset(
        {"NUMBER", "FLOAT", "BINARY_FLOAT", "BINARY_DOUBLE", "INTEGER", "DECIMAL", "SMALLINT"}
    ),
    buffer_types=frozenset({"BLOB", "RAW", "LONG RAW", "BFILE"}),
    timestamp_types=frozenset(
        {
            "DATE",
            "TIMESTAMP",
            "TIMESTAMP WITH TIME ZONE",
            "TIMESTAMP WITH LOCAL TIME ZONE",
        }
    ),
    boolean_native_type="CHAR",
    columns_query="""
        SELECT COLUMN_NAME AS COLUMN_NAME, DATA_TYPE AS DATA_TYPE, DATA_LENGTH AS DATA_LENGTH
        FROM ALL_TAB_COLUMNS
        WHERE OWNER = :schema_name AND TABLE_NAME = :table_name
        ORDER BY COLUMN_ID
    """,
    primary_key_query="""
        SELECT COLS.COLUMN_NAME AS COLUMN_NAME
        FROM ALL_CONSTRAINTS CONS
        INNER JOIN ALL_CONS_COLUMNS COLS
            ON CONS.CONSTRAINT_NAME = COLS.CONSTRAINT_NAME AND CONS.OWNER = COLS.OWNER
        WHERE CONS.CONSTRAINT_TYPE = 'P'
            AND CONS.OWNER = :schema_name
            AND COLS.TABLE_NAME = :table_name
        ORDER BY COLS.POSITION
    """,
    tables_query="""
        SELECT TABLE_NAME AS TABLE_NAME
        FROM ALL_TABLES
        WHERE OWNER = :schema_name
    """,
    views_query="""
        SELECT VIEW_NAME AS TABLE_NAME
        FROM ALL_VIEWS
        WHERE OWNER = :schema_name
    """,
    timestamp_literal_template="{DD}-{MON}-{YYYY} {HH}:{MI}:{SS}",
    date_literal_template="{DD}-{MON}-{YYYY}",
    raw_timestamp_template="TO_DATE('{literal}', 'DD-MON-YYYY HH24:MI:SS')",
    raw_date_template="TO_DATE('{literal}', 'DD-MON-YYYY')",
)


MYSQL = Dialect(
    name=MYSQL_DIALECT_NAME,
    number_types=frozenset(
        {
            "TINYINT",
            "SMALLINT",
            "MEDIUMINT",
            "INT",
            "INTEGER",
            "BIGINT",
            "DECIMAL",
            "NUMERIC",
            "FLOAT",
            "DOUBLE",
            "REAL",
        }
    ),
    buffer_types=frozenset(
        {"BINARY", "VARBINARY", "TINYBLOB", "BLOB", "MEDIUMBLOB", "LONGBLOB"}
    ),
    timestamp_types=frozenset({"DATE", "DATETIME", "TIMESTAMP"}),
    boolean_native_type="CHAR",
    columns_query="""
        SELECT COLUMN_NAME AS COLUMN_NAME, DATA_TYPE AS DATA_TYPE,
            CHARACTER_MAXIMUM_LENGTH AS DATA_LENGTH
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = :schema_name AND TABLE_NAME = :table_name
        ORDER BY ORDINAL_POSITION
    """,
    primary_key_query="""
        SELECT COLUMN_NAME AS COLUMN_NAME
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
        WHERE CONSTRAINT_NAME = 'PRIMARY'
            AND TABLE_SCHEMA = :schema_name
            AND TABLE_NAME = :table_name
        ORDER BY ORDINAL_POSITION
    """,
    tables_query="""
        SELECT TABLE_NAME AS TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = :schema_name AND TABLE_TYPE = 'BASE TABLE'
    """,
    views_query=None,
    timestamp_literal_template="{YYYY}-{MM}-{DD} {HH}:{MI}:{SS}",
    date_literal_template="{YYYY}-{MM}-{DD}",
    raw_timestamp_template=None,
    raw_date_template=None,
)


SUPPORTED_DIALECTS = {dialect.name: dialect for dialect in (ORACLE, MYSQL)}


def get_dialect(name: str) -> Dialect:
    """Return the supported dialect with the given name, ignoring case."""
    dialect = SUPPORTED_DIALECTS.get(name.strip().lower())
    if dialect is None:
        raise ValueError(
            f"Unsupported dialect {name!r}. Expected one of: {sorted(SUPPORTED_DIALECTS)}."
        )
    return dialect

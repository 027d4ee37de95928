# Copyright 2021-present Kensho Technologies, LLC.
from .column_classification import ColumnInfo, classify_column  # noqa
from .table_schema import ColumnCategory, IdType, SchemaCatalog, TableSchema  # noqa

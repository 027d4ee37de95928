# Copyright 2021-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .backend import RelationalBackend  # noqa
from .compiler import compile_query, validate_query  # noqa
from .config import CrudConfig  # noqa
from .crud import CrudFacade  # noqa
from .dialects import MYSQL, ORACLE, Dialect, get_dialect  # noqa
from .exceptions import (  # noqa
    BackendError,
    CatalogError,
    CoercionError,
    CrudCompilerError,
    DiscoveryError,
    TranslationError,
    ValidationError,
)
from .query_object import QueryKey, QueryObject  # noqa
from .query_parsing import parse_query_string, parse_raw_query, translate_filter  # noqa
from .query_running import run_query, run_raw_query  # noqa
from .schema import SchemaCatalog, TableSchema  # noqa
from .schema.schema_cache import SchemaCache  # noqa
from .sqlalchemy_backend import SQLAlchemyBackend  # noqa


__package_name__ = "crud-compiler"
__version__ = "1.0.0"

# Copyright 2021-present Kensho Technologies, LLC.
"""Immutable configuration shared by every component of the CRUD compiler."""
from dataclasses import dataclass
import os
from typing import Callable, Mapping, Optional

from .dialects import Dialect, get_dialect


DEFAULT_CATALOG_PATH = "schema_catalog.json"

_TRUTHY_ENVIRONMENT_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class CrudConfig:
    """Configuration of the dialect, the schema catalog and the value conventions in use."""

    dialect: Dialect

    # The owner (Oracle) or database (MySQL) whose tables are enumerated and introspected.
    schema_name: str

    # Location of the JSON file holding the persisted schema catalog.
    catalog_path: str = DEFAULT_CATALOG_PATH

    # Sentinels used to store booleans in columns of the boolean-carrying native type.
    boolean_true: str = "Y"
    boolean_false: str = "N"

    # Overrides the dialect's boolean-carrying native type, when set.
    boolean_native_type: Optional[str] = None

    # Wrap date literals in a raw date-construction expression, on dialects that have one.
    wrap_date_literals: bool = True

    # Replaces the default storage-direction formatting of timestamp strings, when set.
    timestamp_formatter: Optional[Callable[[str], str]] = None

    # Log compiled operations at INFO rather than DEBUG level.
    debug: bool = False

    def __post_init__(self) -> None:
        """Validate fields."""
        if not self.schema_name:
            raise AssertionError("The schema_name field is expected to be non-empty.")
        if self.boolean_true == self.boolean_false:
            raise AssertionError(
                f"The boolean sentinels must differ, but both were {self.boolean_true!r}."
            )

    @property
    def effective_boolean_native_type(self) -> str:
        """Return the native type whose length-1 columns may hold sentinel-encoded booleans."""
        if self.boolean_native_type is not None:
            return self.boolean_native_type.upper()
        return self.dialect.boolean_native_type

    @property
    def boolean_sentinels(self) -> Mapping[str, bool]:
        """Return the mapping of each boolean sentinel to the boolean it encodes."""
        return {self.boolean_true: True, self.boolean_false: False}

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "CrudConfig":
        """Load configuration from environment variables.

        Reads CRUD_DIALECT and CRUD_SCHEMA (both required), and optionally CRUD_CATALOG_PATH,
        CRUD_BOOLEAN_TRUE, CRUD_BOOLEAN_FALSE and CRUD_DEBUG.

        Args:
            environ: mapping to read the variables from, defaulting to os.environ

        Returns:
            CrudConfig built from the variables

        Raises:
            ValueError: if a required variable is missing or the dialect is not supported
        """
        if environ is None:
            environ = os.environ

        dialect_name = environ.get("CRUD_DIALECT")
        schema_name = environ.get("CRUD_SCHEMA")
        if not dialect_name:
            raise ValueError("The CRUD_DIALECT environment variable is required.")
        if not schema_name:
            raise ValueError("The CRUD_SCHEMA environment variable is required.")

        return cls(
            dialect=get_dialect(dialect_name),
            schema_name=schema_name,
            catalog_path=environ.get("CRUD_CATALOG_PATH", DEFAULT_CATALOG_PATH),
            boolean_true=environ.get("CRUD_BOOLEAN_TRUE", "Y"),
            boolean_false=environ.get("CRUD_BOOLEAN_FALSE", "N"),
            debug=environ.get("CRUD_DEBUG", "").strip().lower() in _TRUTHY_ENVIRONMENT_VALUES,
        )

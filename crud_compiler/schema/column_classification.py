# Copyright 2021-present Kensho Technologies, LLC.
"""Classify introspected columns into the semantic categories the compiler works with."""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..config import CrudConfig
from ..dialects import normalize_native_type_name
from ..global_utils import get_case_insensitive, try_parse_number
from .table_schema import ColumnCategory


# Labels of the columns returned by each dialect's columns query.
COLUMN_NAME_LABEL = "COLUMN_NAME"
DATA_TYPE_LABEL = "DATA_TYPE"
DATA_LENGTH_LABEL = "DATA_LENGTH"

BOOLEAN_COLUMN_LENGTH = 1


@dataclass(frozen=True)
class ColumnInfo:
    """The introspected name, native type and declared length of one column."""

    name: str
    native_type: str
    length: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ColumnInfo":
        """Build the column info from a row returned by a dialect's columns query."""
        raw_length = get_case_insensitive(row, DATA_LENGTH_LABEL)
        parsed_length = try_parse_number(raw_length)
        return cls(
            name=get_case_insensitive(row, COLUMN_NAME_LABEL),
            native_type=normalize_native_type_name(
                str(get_case_insensitive(row, DATA_TYPE_LABEL))
            ),
            length=None if parsed_length is None else int(parsed_length),
        )


def _is_boolean_column(
    column_info: ColumnInfo, config: CrudConfig, sample_row: Optional[Mapping[str, Any]]
) -> bool:
    """Return True if the column holds sentinel-encoded booleans, going by the sampled row.

    Without a sampled row, every length-1 column of the boolean-carrying type is assumed boolean.
    Misclassifying a column as boolean is harmless: reading converts only the sentinel values.
    """
    if column_info.native_type != config.effective_boolean_native_type:
        return False
    if column_info.length != BOOLEAN_COLUMN_LENGTH:
        return False
    if sample_row is None:
        return True

    try:
        sampled_value = get_case_insensitive(sample_row, column_info.name)
    except KeyError:
        return True
    return sampled_value in config.boolean_sentinels


def classify_column(
    column_info: ColumnInfo, config: CrudConfig, sample_row: Optional[Mapping[str, Any]] = None
) -> ColumnCategory:
    """Classify a column into exactly one semantic category.

    Args:
        column_info: the introspected name, native type and length of the column
        config: configuration naming the dialect, the boolean-carrying native type
                and the boolean sentinels
        sample_row: optional row sampled from the table, used to confirm boolean columns

    Returns:
        the ColumnCategory of the column. Columns of unrecognized native types are strings.
    """
    dialect = config.dialect
    if column_info.native_type in dialect.number_types:
        return ColumnCategory.NUMBER
    elif column_info.native_type in dialect.buffer_types:
        return ColumnCategory.BUFFER
    elif column_info.native_type in dialect.timestamp_types:
        return ColumnCategory.TIMESTAMP
    elif _is_boolean_column(column_info, config, sample_row):
        return ColumnCategory.BOOLEAN
    else:
        return ColumnCategory.STRING

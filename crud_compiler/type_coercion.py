# Copyright 2021-present Kensho Technologies, LLC.
"""Convert values between their wire representation and the representation the engine stores.

"Server direction" conversions turn values read from the engine into the values returned to
callers. "Storage direction" conversions turn caller-supplied values into the values written to,
or compared against, the engine. All conversions are pure. Boolean conversions never fail and
pass non-boolean values through unchanged, since callers may pass already-converted values.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from .config import CrudConfig
from .exceptions import CoercionError


MONTH_TOKENS = (
    "JAN",
    "FEB",
    "MAR",
    "APR",
    "MAY",
    "JUN",
    "JUL",
    "AUG",
    "SEP",
    "OCT",
    "NOV",
    "DEC",
)

BUFFER_TYPE_NAME = "Buffer"


@dataclass(frozen=True)
class DateLiteral:
    """A date or timestamp rendered in the syntax of a specific SQL dialect.

    When raw is True, the text is an SQL expression (e.g. a TO_DATE call) that has to be inlined
    into the emitted SQL. Otherwise, the text is a plain string literal sent as a bound parameter.
    """

    text: str
    raw: bool


######
# Booleans
######


def to_server_boolean(value: Any, config: CrudConfig) -> Any:
    """Convert a stored boolean sentinel to a Python bool, passing other values through."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return config.boolean_sentinels.get(value, value)
    return value


def to_storage_boolean(value: Any, config: CrudConfig) -> Any:
    """Convert a Python bool to its storage sentinel, passing other values through."""
    if isinstance(value, bool):
        return config.boolean_true if value else config.boolean_false
    return value


######
# Timestamps and dates
######


def _parse_timestamp(value: Any) -> datetime:
    """Return the timezone-naive datetime represented by the value, or raise CoercionError."""
    if isinstance(value, datetime):
        parsed_value = value
    elif isinstance(value, date):
        parsed_value = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed_value = parse_datetime(value.strip())
        except ValueError as e:
            raise CoercionError(
                f"Expected an ISO-8601 timestamp string in 'YYYY-MM-DDTHH:MM:SS' format, "
                f"but got {value!r}: {e}"
            ) from e
    else:
        raise CoercionError(
            f"Expected a datetime, a date or an ISO-8601 timestamp string. "
            f"Got {value!r} of type {type(value).__name__} instead."
        )

    if parsed_value.tzinfo is not None:
        raise CoercionError(
            f"Expected a timezone-naive timestamp, but got {value!r}. Discarding the timezone "
            f"component would result in an implicit loss of precision."
        )
    return parsed_value


def _get_timestamp_components(timestamp: datetime) -> Dict[str, str]:
    """Slice the timestamp into the components the dialect literal templates refer to."""
    return {
        "YYYY": f"{timestamp.year:04d}",
        "MM": f"{timestamp.month:02d}",
        "MON": MONTH_TOKENS[timestamp.month - 1],
        "DD": f"{timestamp.day:02d}",
        "HH": f"{timestamp.hour:02d}",
        "MI": f"{timestamp.minute:02d}",
        "SS": f"{timestamp.second:02d}",
    }


def _make_date_literal(
    literal: str, raw_template: Optional[str], config: CrudConfig
) -> DateLiteral:
    """Wrap the literal in the raw date-construction expression, if configured and available."""
    if config.wrap_date_literals and raw_template is not None:
        return DateLiteral(raw_template.format(literal=literal), raw=True)
    return DateLiteral(literal, raw=False)


def to_storage_timestamp(value: Any, config: CrudConfig) -> DateLiteral:
    """Convert a timestamp to the literal syntax the dialect stores timestamps in.

    Args:
        value: datetime, date or ISO-8601 string in 'YYYY-MM-DDTHH:MM:SS' format. Fractional
               seconds are accepted and dropped.
        config: configuration naming the dialect and, optionally, a custom timestamp formatter
                that replaces the default formatting of string values

    Returns:
        DateLiteral holding the dialect-specific timestamp literal

    Raises:
        CoercionError: if the value is not a well-formed, timezone-naive timestamp
    """
    if config.timestamp_formatter is not None and isinstance(value, str):
        return DateLiteral(config.timestamp_formatter(value), raw=False)

    dialect = config.dialect
    components = _get_timestamp_components(_parse_timestamp(value))
    literal = dialect.timestamp_literal_template.format(**components)
    return _make_date_literal(literal, dialect.raw_timestamp_template, config)


def to_comparison_date(value: Any, config: CrudConfig) -> DateLiteral:
    """Convert a timestamp to the date-only literal used when comparing against timestamp columns.

    The time component of the value, if any, is dropped: comparisons on timestamp columns
    are supported at day precision only.

    Raises:
        CoercionError: if the value is not a well-formed, timezone-naive timestamp
    """
    dialect = config.dialect
    components = _get_timestamp_components(_parse_timestamp(value))
    literal = dialect.date_literal_template.format(**components)
    return _make_date_literal(literal, dialect.raw_date_template, config)


def to_server_timestamp(value: Any) -> Any:
    """Convert a datetime or date read from the engine to its ISO-8601 string."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


######
# Buffers
######


def _buffer_chunk_to_bytes(chunk: Mapping[str, Any]) -> bytes:
    """Return the raw bytes of a single buffer wrapper."""
    if chunk.get("type") != BUFFER_TYPE_NAME or "data" not in chunk:
        raise CoercionError(
            f"Expected a buffer wrapper of the form {{'type': 'Buffer', 'data': [...]}}, "
            f"but got {chunk!r}."
        )
    data = chunk["data"]
    if not isinstance(data, (list, tuple)):
        raise CoercionError(f"Buffer data must be a list of byte values, but got {data!r}.")
    try:
        return bytes(data)
    except (TypeError, ValueError) as e:
        raise CoercionError(f"Buffer data is not a sequence of byte values: {e}") from e


def to_storage_buffer(value: Any) -> bytes:
    """Extract the raw byte payload from a buffer wrapper, or from the first of several chunks.

    Raises:
        CoercionError: if the value is not bytes, a buffer wrapper or a sequence of them
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, Mapping):
        return _buffer_chunk_to_bytes(value)
    if isinstance(value, Sequence) and not isinstance(value, str):
        if not value:
            raise CoercionError("Expected at least one buffer chunk, but got an empty sequence.")
        return to_storage_buffer(value[0])

    raise CoercionError(
        f"Expected bytes or a buffer wrapper, but got {value!r} of type {type(value).__name__}."
    )


def to_server_buffer(value: Any) -> Any:
    """Convert bytes read from the engine to a JSON-serializable buffer wrapper."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        data: List[int] = list(bytes(value))
        return {"type": BUFFER_TYPE_NAME, "data": data}
    return value


def is_timestamp_string(value: Any) -> bool:
    """Return True if the value is a timezone-naive ISO-8601 date or timestamp string."""
    if not isinstance(value, str):
        return False
    try:
        _parse_timestamp(value)
    except CoercionError:
        return False
    return True

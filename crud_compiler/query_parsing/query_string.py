# Copyright 2021-present Kensho Technologies, LLC.
"""Parse bracket-indexed URL query strings into query objects in canonical wire form.

Examples of the grammar:
    WHERE[COLUMN]=NAME&WHERE[VALUE]=Filip
    AND_WHERE[0][COLUMN]=AGE&AND_WHERE[0][COMPARATOR]=GT&AND_WHERE[0][VALUE]=18
    SELECT=ID,NAME&LIMIT=10&ORDER[0][column]=ID&ORDER[0][order]=desc
    WHERE_BETWEEN[NUMBER]=7,9  (shorthand for WHERE_BETWEEN[COLUMN]=NUMBER&...[VALUES]=7,9)
    filter={"where":{"NAME":"Filip"}}  (a LoopBack-style filter, percent-encoded)
"""
import copy
import re
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qsl

from ..exceptions import TranslationError
from ..query_object import (
    BETWEEN_CLAUSE_KEYS,
    CLAUSE_FIELDS,
    COLUMN_FIELD,
    IN_CLAUSE_KEYS,
    RECOGNIZED_KEY_NAMES,
    VALUE_FIELD,
    VALUES_FIELD,
    QueryKey,
)
from .filter_translator import (
    FIELDS_FILTER_KEY,
    LIMIT_FILTER_KEY,
    ORDER_FILTER_KEY,
    WHERE_FILTER_KEY,
    parse_filter_string,
    translate_filter,
)


FILTER_PARAMETER = "filter"
LOOPBACK_FILTER_KEYS = frozenset(
    {FIELDS_FILTER_KEY, WHERE_FILTER_KEY, LIMIT_FILTER_KEY, ORDER_FILTER_KEY}
)

VALUE_SEPARATOR = ","

_KEY_PATH_PATTERN = re.compile(r"^(?P<name>[^\[\]]+)(?P<indices>(?:\[[^\[\]]*\])*)$")
_KEY_INDEX_PATTERN = re.compile(r"\[([^\[\]]*)\]")

# Keys whose shorthand form KEY[<column>]=<value> carries a sequence of values.
_VALUES_SHORTHAND_KEYS = frozenset(key.value for key in IN_CLAUSE_KEYS | BETWEEN_CLAUSE_KEYS)
# Keys whose shorthand form KEY[<column>]=<value> carries a single value.
_VALUE_SHORTHAND_KEYS = frozenset(
    key.value
    for key in (
        QueryKey.WHERE,
        QueryKey.WHERE_NOT,
        QueryKey.WHERE_LIKE,
        QueryKey.AND_WHERE,
        QueryKey.OR_WHERE,
    )
)

NestedValue = Union[str, Dict[str, Any], List[Any]]


def _split_key_path(key: str) -> List[str]:
    """Split "AND_WHERE[0][COLUMN]" into ["AND_WHERE", "0", "COLUMN"]."""
    match = _KEY_PATH_PATTERN.match(key)
    if match is None:
        return [key]
    return [match.group("name")] + _KEY_INDEX_PATTERN.findall(match.group("indices"))


def _insert_nested_value(target: Dict[str, Any], path: List[str], value: str) -> None:
    """Insert the value into the nested dicts along the path. Empty indices append."""
    current = target
    for depth, segment in enumerate(path):
        if segment == "":
            segment = str(len(current))
        is_last_segment = depth == len(path) - 1
        if is_last_segment:
            current[segment] = value
        else:
            next_level = current.get(segment)
            if not isinstance(next_level, dict):
                next_level = {}
                current[segment] = next_level
            current = next_level


def _convert_indexed_dicts(value: NestedValue) -> NestedValue:
    """Recursively turn dicts whose keys are all non-negative integers into lists, by index."""
    if not isinstance(value, dict):
        return value

    converted = {key: _convert_indexed_dicts(inner_value) for key, inner_value in value.items()}
    if converted and all(key.isdigit() for key in converted):
        return [converted[key] for key in sorted(converted, key=int)]
    return converted


def _split_values(value: Any) -> Any:
    """Split comma-joined values into a list. Other values are returned unchanged."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(VALUE_SEPARATOR)]
    return value


def _expand_clause_record(key_name: str, record: Any) -> Any:
    """Expand the KEY[<column>]=<value> shorthand and split comma-joined VALUES."""
    if not isinstance(record, dict):
        return record

    if len(record) == 1 and not CLAUSE_FIELDS.intersection(record):
        ((column, shorthand_value),) = record.items()
        if key_name in _VALUES_SHORTHAND_KEYS:
            return {COLUMN_FIELD: column, VALUES_FIELD: _split_values(shorthand_value)}
        elif key_name in _VALUE_SHORTHAND_KEYS:
            return {COLUMN_FIELD: column, VALUE_FIELD: shorthand_value}

    if VALUES_FIELD in record:
        record = dict(record)
        record[VALUES_FIELD] = _split_values(record[VALUES_FIELD])
    return record


def _normalize_query(nested_query: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the comma-splitting and shorthand rules to the parsed top-level keys."""
    query = {}
    for key_name, value in nested_query.items():
        if key_name == QueryKey.SELECT.value:
            value = _split_values(value)
        elif isinstance(value, list):
            value = [_expand_clause_record(key_name, element) for element in value]
        else:
            value = _expand_clause_record(key_name, value)
        query[key_name] = value
    return query


def _translate_filter_parameter(filter_value: Any) -> Dict[str, Any]:
    """Translate the value of a "filter" parameter, either JSON text or bracket-nested."""
    if isinstance(filter_value, str):
        return translate_filter(parse_filter_string(filter_value, percent_decode=False))
    elif isinstance(filter_value, dict):
        return translate_filter(filter_value)
    else:
        raise TranslationError(f"Unrecognized filter parameter {filter_value!r}.")


def parse_query_string(query_string: str) -> Dict[str, Any]:
    """Parse a bracket-indexed URL query string into a query object in canonical wire form.

    Args:
        query_string: the query string, with or without the leading "?"

    Returns:
        dict, the query object in canonical wire form. It has not been validated.

    Raises:
        TranslationError: if the query string carries a malformed LoopBack-style filter
    """
    nested_query: Dict[str, Any] = {}
    for key, value in parse_qsl(query_string.lstrip("?"), keep_blank_values=True):
        _insert_nested_value(nested_query, _split_key_path(key), value)

    converted_query = _convert_indexed_dicts(nested_query)
    if not isinstance(converted_query, dict):
        raise TranslationError(f"Query string {query_string!r} has no named parameters.")

    filter_value = converted_query.pop(FILTER_PARAMETER, None)
    query = _normalize_query(converted_query)
    if filter_value is not None:
        query.update(_translate_filter_parameter(filter_value))
    return query


def is_loopback_filter(raw_query: Mapping[str, Any]) -> bool:
    """Return True if the mapping is a LoopBack-style filter rather than a canonical query."""
    keys = set(raw_query)
    return bool(keys & LOOPBACK_FILTER_KEYS) and not keys & RECOGNIZED_KEY_NAMES


def parse_raw_query(raw_query: Optional[Union[str, Mapping[str, Any]]]) -> Dict[str, Any]:
    """Turn any supported client query into a query object in canonical wire form.

    Args:
        raw_query: None (no filtering), a URL query string, a LoopBack-style filter mapping,
                   a mapping with a "filter" entry, or a query object in canonical wire form.
                   Mappings are copied and never modified.

    Returns:
        dict, the query object in canonical wire form. It has not been validated.

    Raises:
        TranslationError: if the query cannot be translated
    """
    if raw_query is None:
        return {}
    elif isinstance(raw_query, str):
        return parse_query_string(raw_query)
    elif isinstance(raw_query, Mapping):
        if FILTER_PARAMETER in raw_query:
            remaining_query = {
                key: value for key, value in raw_query.items() if key != FILTER_PARAMETER
            }
            query = copy.deepcopy(remaining_query)
            query.update(_translate_filter_parameter(raw_query[FILTER_PARAMETER]))
            return query
        elif is_loopback_filter(raw_query):
            return translate_filter(copy.deepcopy(raw_query))
        else:
            return copy.deepcopy(dict(raw_query))
    else:
        raise TranslationError(
            f"Expected a query string or a mapping, but got {raw_query!r} of type "
            f"{type(raw_query).__name__}."
        )

# Copyright 2021-present Kensho Technologies, LLC.
"""Translate LoopBack-style nested filters into query objects in canonical wire form.

The translator is deliberately forgiving: unrecognized keys and operators are ignored, and the
resulting query object is checked by the validator like any other. The only translation error
is an order entry that does not end with one of the ASC or DESC keywords.
"""
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Sequence
from urllib.parse import unquote

from ..exceptions import TranslationError
from ..query_object import (
    COLUMN_FIELD,
    COMPARATOR_FIELD,
    ORDER_COLUMN_FIELD,
    ORDER_DIRECTION_FIELD,
    VALUE_FIELD,
    VALUES_FIELD,
    Comparator,
    QueryKey,
)


logger = logging.getLogger(__name__)

FIELDS_FILTER_KEY = "fields"
WHERE_FILTER_KEY = "where"
LIMIT_FILTER_KEY = "limit"
ORDER_FILTER_KEY = "order"

AND_OPERATOR = "and"
OR_OPERATOR = "or"

COMPARISON_OPERATORS = frozenset({"eq", "gt", "lt"})
BETWEEN_OPERATOR = "between"
INQ_OPERATOR = "inq"
NIN_OPERATOR = "nin"

# The direction keyword is case-sensitive; whitespace around the column name is trimmed.
_ORDER_ENTRY_PATTERN = re.compile(r"^\s*(?P<column>.*?)\s+(?P<direction>ASC|DESC)\s*$")


def _is_selected(value: Any) -> bool:
    """Return True if a "fields" entry selects its column."""
    return value is True or value == "true"


def _translate_fields(fields: Any) -> List[str]:
    """Return the selected columns of a "fields" entry, in order."""
    if isinstance(fields, Mapping):
        return [column for column, selected in fields.items() if _is_selected(selected)]
    if isinstance(fields, Sequence) and not isinstance(fields, str):
        return [column for column in fields if isinstance(column, str)]
    return []


def _make_comparison_record(column: str, comparator: Comparator, value: Any) -> Dict[str, Any]:
    """Return a comparison clause record in wire form."""
    return {COLUMN_FIELD: column, COMPARATOR_FIELD: comparator.name, VALUE_FIELD: value}


def _translate_operator_object(
    column: str, operators: Mapping[str, Any], query: Dict[str, Any]
) -> None:
    """Translate a {operator: value} condition on the column, writing clauses into the query."""
    for operator, value in operators.items():
        if operator in COMPARISON_OPERATORS:
            query[QueryKey.WHERE.value] = _make_comparison_record(
                column, Comparator[operator.upper()], value
            )
        elif operator == BETWEEN_OPERATOR:
            query[QueryKey.WHERE_BETWEEN.value] = {COLUMN_FIELD: column, VALUES_FIELD: value}
        elif operator == INQ_OPERATOR:
            query[QueryKey.WHERE_IN.value] = {COLUMN_FIELD: column, VALUES_FIELD: value}
        elif operator == NIN_OPERATOR:
            query[QueryKey.WHERE_NOT_IN.value] = {COLUMN_FIELD: column, VALUES_FIELD: value}
        else:
            logger.debug("Ignoring unsupported filter operator %r on column %r.", operator, column)


def _translate_junction(entries: Any) -> List[Dict[str, Any]]:
    """Translate the entries of an "and"/"or" list into comparison clause records, in order."""
    if not isinstance(entries, Sequence) or isinstance(entries, str):
        logger.debug("Ignoring junction entries %r that are not a list.", entries)
        return []

    records = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            logger.debug("Ignoring junction entry %r that is not an object.", entry)
            continue
        for column, value in entry.items():
            if isinstance(value, Mapping):
                for operator, operand in value.items():
                    if operator in COMPARISON_OPERATORS:
                        records.append(
                            _make_comparison_record(column, Comparator[operator.upper()], operand)
                        )
                    else:
                        logger.debug(
                            "Ignoring unsupported junction operator %r on column %r.",
                            operator,
                            column,
                        )
            else:
                records.append(_make_comparison_record(column, Comparator.EQ, value))
    return records


def _translate_where(where: Mapping[str, Any], query: Dict[str, Any]) -> None:
    """Translate a "where" entry, writing the resulting clauses into the query."""
    for key, value in where.items():
        if key == AND_OPERATOR:
            query[QueryKey.AND_WHERE.value] = _translate_junction(value)
        elif key == OR_OPERATOR:
            query[QueryKey.OR_WHERE.value] = _translate_junction(value)
        elif isinstance(value, Mapping):
            _translate_operator_object(key, value, query)
        else:
            # The translator does not merge conditions: the last scalar condition wins.
            query[QueryKey.WHERE.value] = _make_comparison_record(key, Comparator.EQ, value)


def _translate_order_entry(entry: Any) -> Dict[str, str]:
    """Translate a "<column> ASC" or "<column> DESC" string into an order entry."""
    if not isinstance(entry, str):
        raise TranslationError(f"Expected an order entry string, but got {entry!r}.")

    match = _ORDER_ENTRY_PATTERN.match(entry)
    if match is None or not match.group("column"):
        raise TranslationError(
            f'Order entry {entry!r} must have the form "<column> ASC" or "<column> DESC".'
        )
    return {
        ORDER_COLUMN_FIELD: match.group("column"),
        ORDER_DIRECTION_FIELD: match.group("direction").lower(),
    }


def translate_filter(loopback_filter: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a LoopBack-style filter into a query object in canonical wire form.

    Args:
        loopback_filter: mapping with the optional keys "fields" (column -> boolean),
                         "where" (column -> scalar or operator object, plus the "and"/"or"
                         junctions), "limit" (number) and "order" (list of "<column> ASC|DESC")

    Returns:
        dict, the query object in canonical wire form. It has not been validated.

    Raises:
        TranslationError: if an order entry is malformed
    """
    query: Dict[str, Any] = {}

    if FIELDS_FILTER_KEY in loopback_filter:
        select = _translate_fields(loopback_filter[FIELDS_FILTER_KEY])
        if select:
            query[QueryKey.SELECT.value] = select

    where = loopback_filter.get(WHERE_FILTER_KEY)
    if isinstance(where, Mapping):
        _translate_where(where, query)

    if LIMIT_FILTER_KEY in loopback_filter:
        query[QueryKey.LIMIT.value] = loopback_filter[LIMIT_FILTER_KEY]

    if ORDER_FILTER_KEY in loopback_filter:
        order = loopback_filter[ORDER_FILTER_KEY]
        if isinstance(order, str):
            order = [order]
        elif not isinstance(order, Sequence):
            raise TranslationError(f"Expected a list of order entries, but got {order!r}.")
        query[QueryKey.ORDER.value] = [_translate_order_entry(entry) for entry in order]

    return query


def parse_filter_string(filter_text: str, percent_decode: bool = True) -> Dict[str, Any]:
    """Decode a URL-embedded filter, e.g. %7B%22where%22%3A%7B%22NAME%22%3A%22Filip%22%7D%7D.

    Args:
        filter_text: the filter, as it appears in the URL
        percent_decode: whether the text still has to be percent-decoded. Query string parsers
                        usually decode parameter values already.

    Raises:
        TranslationError: if the decoded text is not a JSON object
    """
    decoded_text = unquote(filter_text.replace("+", " ")) if percent_decode else filter_text
    try:
        loopback_filter = json.loads(decoded_text)
    except ValueError as e:
        raise TranslationError(f"Filter {decoded_text!r} is not valid JSON: {e}") from e

    if not isinstance(loopback_filter, dict):
        raise TranslationError(
            f"Expected the filter to be a JSON object, but got {decoded_text!r}."
        )
    return loopback_filter

# Copyright 2021-present Kensho Technologies, LLC.
"""Validate query objects in wire form, whichever grammar produced them.

Validation mutates the wire-form query object in place, applying defaults and coercions
(the EQ comparator default, integer limits, numeric BETWEEN bounds, lowercase sort directions),
and produces the typed QueryObject the compiler consumes. Validation never raises: malformed
query objects produce a Failure describing the first problem found.
"""
import logging
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence

from ..exceptions import ValidationError
from ..global_utils import try_parse_number
from ..query_object import (
    AGGREGATE_KEYS,
    BETWEEN_CLAUSE_KEYS,
    CHAIN_STARTER_KEYS,
    COLUMN_FIELD,
    COMPARATOR_FIELD,
    IN_CLAUSE_KEYS,
    ORDER_COLUMN_FIELD,
    ORDER_DIRECTION_FIELD,
    RECOGNIZED_KEY_NAMES,
    VALUE_FIELD,
    VALUES_FIELD,
    AggregateRequest,
    BetweenClause,
    ChainStarter,
    Clause,
    ComparisonClause,
    Comparator,
    InClause,
    LikeClause,
    OrderTerm,
    QueryKey,
    QueryObject,
    SortDirection,
)
from ..type_coercion import is_timestamp_string
from ..typedefs import Failure, Result, Success


logger = logging.getLogger(__name__)

_SCALAR_RECORD_FIELDS = (COLUMN_FIELD, COMPARATOR_FIELD, VALUE_FIELD)


def _is_empty(value: Any) -> bool:
    """Return True if the value is missing: None or an empty string."""
    return value is None or (isinstance(value, str) and not value.strip())


def _is_sequence(value: Any) -> bool:
    """Return True if the value is a list-like sequence of values."""
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _describe_location(key: QueryKey, index: Optional[int]) -> str:
    """Return the bracket notation locating a clause record, for error messages."""
    if index is None:
        return key.value
    return f"{key.value}[{index}]"


def _get_record(key: QueryKey, value: Any, index: Optional[int] = None) -> MutableMapping[str, Any]:
    """Ensure the value is a clause record with scalar fields, and return it."""
    location = _describe_location(key, index)
    if not isinstance(value, MutableMapping):
        raise ValidationError(
            f"Expected {location} to be a clause record with a {COLUMN_FIELD} field, "
            f"but got {value!r}."
        )

    for field_name in _SCALAR_RECORD_FIELDS:
        field_value = value.get(field_name)
        if _is_sequence(field_value) or isinstance(field_value, Mapping):
            raise ValidationError(
                f"Malformed bracket nesting in {location}: field {field_name} holds "
                f"{field_value!r}. Array indices must directly follow the keyword, "
                f"as in {key.value}[0][{COLUMN_FIELD}]."
            )
    return value


def _get_column(key: QueryKey, record: Mapping[str, Any], index: Optional[int] = None) -> str:
    """Return the non-empty column of the clause record."""
    column = record.get(COLUMN_FIELD)
    if _is_empty(column) or not isinstance(column, str):
        raise ValidationError(
            f"{_describe_location(key, index)} requires a non-empty {COLUMN_FIELD} field."
        )
    return column


def _get_record_list(key: QueryKey, value: Any) -> List[MutableMapping[str, Any]]:
    """Return the clause records of a key accepting either a single record or an array of them."""
    if isinstance(value, Mapping):
        return [_get_record(key, value)]
    if _is_sequence(value):
        return [_get_record(key, element, index) for index, element in enumerate(value)]
    raise ValidationError(
        f"Expected {key.value} to be a clause record or an array of clause records, "
        f"but got {value!r}."
    )


def _validate_comparison_record(
    key: QueryKey, record: MutableMapping[str, Any], index: Optional[int] = None
) -> Clause:
    """Validate a clause record comparing a column against a single value."""
    location = _describe_location(key, index)
    column = _get_column(key, record, index)

    value = record.get(VALUE_FIELD)
    if _is_empty(value):
        raise ValidationError(f"{location} requires a non-empty {VALUE_FIELD} field.")

    if key == QueryKey.WHERE_LIKE:
        # LIKE fixes the comparator, so any comparator in the record is disregarded.
        return LikeClause(column, value)

    comparator_name = record.get(COMPARATOR_FIELD)
    if _is_empty(comparator_name):
        comparator_name = Comparator.EQ.name
    is_known_comparator = (
        isinstance(comparator_name, str) and comparator_name.upper() in Comparator.__members__
    )
    if not is_known_comparator:
        raise ValidationError(
            f"{location} has unsupported {COMPARATOR_FIELD} {comparator_name!r}. "
            f"Expected one of: {list(Comparator.__members__)}."
        )
    comparator_name = comparator_name.upper()
    record[COMPARATOR_FIELD] = comparator_name
    return ComparisonClause(column, Comparator[comparator_name], value)


def _get_values(key: QueryKey, record: Mapping[str, Any], index: Optional[int] = None) -> List[Any]:
    """Return the non-empty VALUES sequence of a clause record."""
    location = _describe_location(key, index)
    values = record.get(VALUES_FIELD)
    if not _is_sequence(values) or not values:
        raise ValidationError(f"{location} requires a non-empty {VALUES_FIELD} array.")
    for value in values:
        if _is_empty(value) or _is_sequence(value) or isinstance(value, Mapping):
            raise ValidationError(
                f"{location} has an empty or non-scalar entry {value!r} in {VALUES_FIELD}."
            )
    return list(values)


def _validate_in_record(
    key: QueryKey, record: Mapping[str, Any], index: Optional[int] = None
) -> InClause:
    """Validate a clause record matching a column against a sequence of values."""
    column = _get_column(key, record, index)
    return InClause(column, tuple(_get_values(key, record, index)))


def _coerce_range_bound(key: QueryKey, value: Any) -> Any:
    """Return the range bound as-is if it is an ISO-8601 date string, or else as a number.

    Compact dates such as "20200101" are also numeric strings. They are kept as strings here,
    and become numbers only when compiled against a number column.
    """
    if is_timestamp_string(value):
        return value
    parsed_number = try_parse_number(value)
    if parsed_number is not None:
        return parsed_number
    raise ValidationError(
        f"{key.value} bounds must be numbers or ISO-8601 dates, but got {value!r}."
    )


def _validate_between_record(key: QueryKey, record: MutableMapping[str, Any]) -> BetweenClause:
    """Validate a clause record matching a column against an inclusive [low, high] range."""
    column = _get_column(key, record)
    values = _get_values(key, record)
    if len(values) != 2:
        raise ValidationError(
            f"{key.value} requires exactly 2 entries in {VALUES_FIELD}, [low, high], "
            f"but got {values!r}."
        )
    low, high = (_coerce_range_bound(key, value) for value in values)
    record[VALUES_FIELD] = [low, high]
    return BetweenClause(column, low, high)


def _validate_limit(raw_query: Dict[str, Any]) -> int:
    """Return the limit as a non-negative integer, coercing numeric strings in place."""
    raw_limit = raw_query[QueryKey.LIMIT.value]
    limit = try_parse_number(raw_limit)
    if limit is None or limit != int(limit) or limit < 0:
        raise ValidationError(
            f"{QueryKey.LIMIT.value} must be a non-negative integer, but got {raw_limit!r}."
        )
    raw_query[QueryKey.LIMIT.value] = int(limit)
    return int(limit)


def _validate_order(raw_query: Dict[str, Any]) -> List[OrderTerm]:
    """Return the order terms, lowercasing their directions in place."""
    raw_order = raw_query[QueryKey.ORDER.value]
    if isinstance(raw_order, Mapping):
        raw_order = [raw_order]
        raw_query[QueryKey.ORDER.value] = raw_order
    if not _is_sequence(raw_order):
        raise ValidationError(
            f"Expected {QueryKey.ORDER.value} to be an array of order entries, "
            f"but got {raw_order!r}."
        )

    order_terms = []
    for index, entry in enumerate(raw_order):
        location = _describe_location(QueryKey.ORDER, index)
        if not isinstance(entry, MutableMapping):
            raise ValidationError(f"Expected {location} to be an order entry, but got {entry!r}.")

        column = entry.get(ORDER_COLUMN_FIELD)
        if _is_empty(column) or not isinstance(column, str):
            raise ValidationError(f"{location} requires a non-empty {ORDER_COLUMN_FIELD} field.")

        direction = entry.get(ORDER_DIRECTION_FIELD)
        allowed_directions = [member.value for member in SortDirection]
        if not isinstance(direction, str) or direction.lower() not in allowed_directions:
            raise ValidationError(
                f"{location} has unsupported {ORDER_DIRECTION_FIELD} {direction!r}. "
                f"Expected one of: {allowed_directions}."
            )
        entry[ORDER_DIRECTION_FIELD] = direction.lower()
        order_terms.append(OrderTerm(column, SortDirection(direction.lower())))
    return order_terms


def _validate_select(raw_query: Dict[str, Any]) -> List[str]:
    """Return the selected columns. A single column name is accepted and wrapped in place."""
    select = raw_query[QueryKey.SELECT.value]
    if isinstance(select, str):
        select = [select]
        raw_query[QueryKey.SELECT.value] = select
    if not _is_sequence(select) or any(_is_empty(column) for column in select):
        raise ValidationError(
            f"Expected {QueryKey.SELECT.value} to be an array of non-empty column names, "
            f"but got {select!r}."
        )
    return list(select)


def _validate_aggregate(raw_query: Dict[str, Any]) -> AggregateRequest:
    """Return the MIN or MAX request of a terminal aggregate query."""
    requested_functions = [key for key in AGGREGATE_KEYS if key.value in raw_query]
    if len(requested_functions) > 1:
        raise ValidationError(
            f"Only one of {QueryKey.MIN.value} and {QueryKey.MAX.value} may be requested."
        )
    (function,) = requested_functions

    column = raw_query[function.value]
    if _is_empty(column) or not isinstance(column, str):
        raise ValidationError(f"{function.value} requires a non-empty column name.")

    ignored_keys = sorted(key for key in raw_query if key != function.value)
    if ignored_keys:
        logger.debug("Ignoring keys %s of a %s query.", ignored_keys, function.value)
    return AggregateRequest(function, column)


def _validate_starter(raw_query: Dict[str, Any]) -> Optional[ChainStarter]:
    """Return the single chain starter of the query, if any."""
    present_starters = [key for key in CHAIN_STARTER_KEYS if key.value in raw_query]
    if not present_starters:
        return None
    if len(present_starters) > 1:
        raise ValidationError(
            f"At most one chain starter clause may be present, but got "
            f"{[key.value for key in present_starters]}. Use {QueryKey.AND_WHERE.value}, "
            f"{QueryKey.OR_WHERE.value} or {QueryKey.OR_WHERE_IN.value} to extend the chain."
        )

    (kind,) = present_starters
    record = _get_record(kind, raw_query[kind.value])
    clause: Clause
    if kind in IN_CLAUSE_KEYS:
        clause = _validate_in_record(kind, record)
    elif kind in BETWEEN_CLAUSE_KEYS:
        clause = _validate_between_record(kind, record)
    else:
        clause = _validate_comparison_record(kind, record)
    return ChainStarter(kind, clause)


def _build_query_object(raw_query: Dict[str, Any]) -> QueryObject:
    """Validate every present key of the query object and build its typed form."""
    unrecognized_keys = [key for key in raw_query if key not in RECOGNIZED_KEY_NAMES]
    if unrecognized_keys:
        raise ValidationError(
            f'Unrecognized query key "{unrecognized_keys[0]}". '
            f"Expected one of: {sorted(RECOGNIZED_KEY_NAMES)}."
        )

    query = QueryObject()
    if any(key.value in raw_query for key in AGGREGATE_KEYS):
        # MIN and MAX are terminal: every other key of the query is disregarded.
        query.aggregate = _validate_aggregate(raw_query)
        return query

    if QueryKey.SELECT.value in raw_query:
        query.select = _validate_select(raw_query)

    query.starter = _validate_starter(raw_query)

    for key, target in (
        (QueryKey.AND_WHERE, query.and_where),
        (QueryKey.OR_WHERE, query.or_where),
    ):
        if key.value in raw_query:
            records = _get_record_list(key, raw_query[key.value])
            for index, record in enumerate(records):
                clause = _validate_comparison_record(key, record, index)
                if not isinstance(clause, ComparisonClause):
                    raise AssertionError(f"Expected a comparison clause, got {clause!r}.")
                target.append(clause)

    if QueryKey.OR_WHERE_IN.value in raw_query:
        records = _get_record_list(QueryKey.OR_WHERE_IN, raw_query[QueryKey.OR_WHERE_IN.value])
        query.or_where_in = [
            _validate_in_record(QueryKey.OR_WHERE_IN, record, index)
            for index, record in enumerate(records)
        ]

    if QueryKey.LIMIT.value in raw_query:
        query.limit = _validate_limit(raw_query)

    if QueryKey.ORDER.value in raw_query:
        query.order = _validate_order(raw_query)

    return query


def validate_query(raw_query: Any) -> Result:
    """Validate a query object in wire form, and convert it to its typed form.

    Args:
        raw_query: dict, the query object in wire form. It is mutated in place: defaults and
                   coercions are applied to it.

    Returns:
        Success holding the typed QueryObject, or a validation Failure naming the problem
    """
    if not isinstance(raw_query, dict):
        return Failure.from_exception(
            ValidationError(f"Expected the query object to be a dict, but got {raw_query!r}.")
        )

    try:
        return Success(_build_query_object(raw_query))
    except ValidationError as e:
        logger.debug("Query object %s failed validation: %s", raw_query, e)
        return Failure.from_exception(e)

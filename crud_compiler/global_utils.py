# Copyright 2021-present Kensho Technologies, LLC.
import math
from typing import Any, Mapping, Optional, Set, Union


Number = Union[int, float]


def assert_set_equality(set1: Set[Any], set2: Set[Any]) -> None:
    """Assert that the sets are the same."""
    diff1 = set1.difference(set2)
    diff2 = set2.difference(set1)

    if diff1 or diff2:
        error_message_list = ["Expected sets to have the same keys."]
        if diff1:
            error_message_list.append(f"Keys in the first set but not the second: {diff1}.")
        if diff2:
            error_message_list.append(f"Keys in the second set but not the first: {diff2}.")
        raise AssertionError(" ".join(error_message_list))


def get_case_insensitive(row: Mapping[str, Any], key: str) -> Any:
    """Return the value stored under the key in the row, ignoring the case of the key.

    Drivers disagree on the case of column labels in raw query results: Oracle reports
    case-insensitive labels in lowercase, while MySQL keeps them as written.
    """
    if key in row:
        return row[key]

    lowered_key = key.lower()
    for row_key, value in row.items():
        if row_key.lower() == lowered_key:
            return value

    raise KeyError(key)


def try_parse_number(value: Any) -> Optional[Number]:
    """Return the value as an int or finite float if it is numeric or numeric text, else None."""
    # bool is a subclass of int, but True and False are not numbers for our purposes.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        stripped_value = value.strip()
        try:
            return int(stripped_value)
        except ValueError:
            pass
        try:
            parsed_float = float(stripped_value)
        except ValueError:
            return None
        return parsed_float if math.isfinite(parsed_float) else None
    return None

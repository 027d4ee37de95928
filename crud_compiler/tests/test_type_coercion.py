# Copyright 2021-present Kensho Technologies, LLC.
from datetime import date, datetime, timezone
import unittest

from ..dialects import MYSQL, ORACLE
from ..exceptions import CoercionError
from ..type_coercion import (
    DateLiteral,
    is_timestamp_string,
    to_comparison_date,
    to_server_boolean,
    to_server_buffer,
    to_server_timestamp,
    to_storage_boolean,
    to_storage_buffer,
    to_storage_timestamp,
)
from .test_helpers import get_test_config


class BooleanCoercionTests(unittest.TestCase):
    def test_round_trip(self) -> None:
        config = get_test_config()
        for value in (True, False):
            self.assertIs(value, to_server_boolean(to_storage_boolean(value, config), config))

    def test_sentinels(self) -> None:
        config = get_test_config(boolean_true="1", boolean_false="0")
        self.assertEqual("1", to_storage_boolean(True, config))
        self.assertEqual("0", to_storage_boolean(False, config))
        self.assertIs(True, to_server_boolean("1", config))
        self.assertIs(False, to_server_boolean("0", config))

    def test_other_values_pass_through(self) -> None:
        config = get_test_config()
        for value in ("X", "yes", 1, None, 2.5):
            self.assertEqual(value, to_server_boolean(value, config))
            self.assertEqual(value, to_storage_boolean(value, config))
        self.assertIs(True, to_server_boolean(True, config))


class TimestampCoercionTests(unittest.TestCase):
    def test_oracle_timestamps(self) -> None:
        config = get_test_config(dialect=ORACLE)
        self.assertEqual(
            DateLiteral("TO_DATE('05-MAR-2021 14:07:09', 'DD-MON-YYYY HH24:MI:SS')", raw=True),
            to_storage_timestamp("2021-03-05T14:07:09", config),
        )
        self.assertEqual(
            DateLiteral("TO_DATE('05-MAR-2021', 'DD-MON-YYYY')", raw=True),
            to_comparison_date("2021-03-05T14:07:09", config),
        )

    def test_oracle_timestamps_without_wrapping(self) -> None:
        config = get_test_config(dialect=ORACLE, wrap_date_literals=False)
        self.assertEqual(
            DateLiteral("31-DEC-1999 23:59:59", raw=False),
            to_storage_timestamp("1999-12-31T23:59:59", config),
        )

    def test_mysql_timestamps(self) -> None:
        config = get_test_config(dialect=MYSQL)
        self.assertEqual(
            DateLiteral("2021-03-05 14:07:09", raw=False),
            to_storage_timestamp("2021-03-05T14:07:09.123456", config),
        )
        self.assertEqual(
            DateLiteral("2021-03-05", raw=False),
            to_comparison_date(date(2021, 3, 5), config),
        )
        self.assertEqual(
            DateLiteral("2021-03-05 00:00:00", raw=False),
            to_storage_timestamp(datetime(2021, 3, 5), config),
        )

    def test_custom_formatter(self) -> None:
        config = get_test_config(timestamp_formatter=lambda value: value.replace("T", "@"))
        self.assertEqual(
            DateLiteral("2021-03-05@14:07:09", raw=False),
            to_storage_timestamp("2021-03-05T14:07:09", config),
        )

    def test_malformed_timestamps(self) -> None:
        config = get_test_config()
        for value in ("2021-13-05T00:00:00", "05/03/2021", "", "tomorrow", 20210305, None):
            with self.assertRaises(CoercionError):
                to_storage_timestamp(value, config)
            with self.assertRaises(CoercionError):
                to_comparison_date(value, config)

    def test_timezone_aware_timestamps_are_rejected(self) -> None:
        config = get_test_config()
        with self.assertRaises(CoercionError):
            to_storage_timestamp("2021-03-05T14:07:09+02:00", config)
        with self.assertRaises(CoercionError):
            to_storage_timestamp(datetime(2021, 3, 5, tzinfo=timezone.utc), config)

    def test_server_timestamps(self) -> None:
        self.assertEqual("2021-03-05T14:07:09", to_server_timestamp(datetime(2021, 3, 5, 14, 7, 9)))
        self.assertEqual("2021-03-05", to_server_timestamp(date(2021, 3, 5)))
        self.assertEqual("2021-03-05 14:07:09", to_server_timestamp("2021-03-05 14:07:09"))

    def test_is_timestamp_string(self) -> None:
        self.assertTrue(is_timestamp_string("2021-03-05"))
        self.assertTrue(is_timestamp_string("2021-03-05T14:07:09"))
        self.assertFalse(is_timestamp_string("7"))
        self.assertFalse(is_timestamp_string(7))


class BufferCoercionTests(unittest.TestCase):
    def test_storage_buffers(self) -> None:
        wrapper = {"type": "Buffer", "data": [104, 105]}
        self.assertEqual(b"hi", to_storage_buffer(wrapper))
        self.assertEqual(b"hi", to_storage_buffer([wrapper, {"type": "Buffer", "data": [0]}]))
        self.assertEqual(b"hi", to_storage_buffer(b"hi"))

    def test_malformed_buffers(self) -> None:
        for value in (
            "hi",
            [],
            {"type": "Buffer"},
            {"type": "Blob", "data": [1]},
            {"type": "Buffer", "data": 5},
            {"type": "Buffer", "data": [256]},
            42,
        ):
            with self.assertRaises(CoercionError):
                to_storage_buffer(value)

    def test_server_buffers(self) -> None:
        self.assertEqual({"type": "Buffer", "data": [1, 2]}, to_server_buffer(b"\x01\x02"))
        self.assertIsNone(to_server_buffer(None))

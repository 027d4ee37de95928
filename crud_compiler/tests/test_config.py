# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..config import DEFAULT_CATALOG_PATH, CrudConfig
from ..dialects import MYSQL, ORACLE, get_dialect, normalize_native_type_name


class ConfigTests(unittest.TestCase):
    def test_from_environment(self) -> None:
        config = CrudConfig.from_environment(
            {
                "CRUD_DIALECT": "Oracle",
                "CRUD_SCHEMA": "SHOP",
                "CRUD_CATALOG_PATH": "/tmp/catalog.json",
                "CRUD_BOOLEAN_TRUE": "T",
                "CRUD_BOOLEAN_FALSE": "F",
                "CRUD_DEBUG": "true",
            }
        )
        self.assertEqual(
            CrudConfig(
                dialect=ORACLE,
                schema_name="SHOP",
                catalog_path="/tmp/catalog.json",
                boolean_true="T",
                boolean_false="F",
                debug=True,
            ),
            config,
        )
        self.assertEqual({"T": True, "F": False}, config.boolean_sentinels)

    def test_from_environment_defaults(self) -> None:
        config = CrudConfig.from_environment({"CRUD_DIALECT": "mysql", "CRUD_SCHEMA": "shop"})
        self.assertIs(MYSQL, config.dialect)
        self.assertEqual(DEFAULT_CATALOG_PATH, config.catalog_path)
        self.assertEqual(("Y", "N"), (config.boolean_true, config.boolean_false))
        self.assertFalse(config.debug)
        self.assertEqual("CHAR", config.effective_boolean_native_type)

    def test_from_environment_errors(self) -> None:
        with self.assertRaises(ValueError):
            CrudConfig.from_environment({"CRUD_SCHEMA": "shop"})

        with self.assertRaises(ValueError):
            CrudConfig.from_environment({"CRUD_DIALECT": "mysql"})

        with self.assertRaises(ValueError):
            CrudConfig.from_environment({"CRUD_DIALECT": "postgres", "CRUD_SCHEMA": "shop"})

    def test_invalid_config(self) -> None:
        with self.assertRaises(AssertionError):
            CrudConfig(dialect=MYSQL, schema_name="")

        with self.assertRaises(AssertionError):
            CrudConfig(dialect=MYSQL, schema_name="shop", boolean_true="Y", boolean_false="Y")

    def test_boolean_native_type_override(self) -> None:
        config = CrudConfig(dialect=ORACLE, schema_name="SHOP", boolean_native_type="varchar2")
        self.assertEqual("VARCHAR2", config.effective_boolean_native_type)


class DialectTests(unittest.TestCase):
    def test_get_dialect(self) -> None:
        self.assertIs(ORACLE, get_dialect(" ORACLE "))
        self.assertIs(MYSQL, get_dialect("MySQL"))
        with self.assertRaises(ValueError):
            get_dialect("sqlite")

    def test_normalize_native_type_name(self) -> None:
        self.assertEqual("TIMESTAMP", normalize_native_type_name("timestamp(6)"))
        self.assertEqual("VARCHAR2", normalize_native_type_name("varchar2(20 byte)"))
        self.assertEqual(
            "TIMESTAMP WITH TIME ZONE", normalize_native_type_name("TIMESTAMP(6) WITH TIME ZONE")
        )

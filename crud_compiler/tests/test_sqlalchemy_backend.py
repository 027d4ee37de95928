# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, List
import unittest

from ..compiler.operations import (
    AggregateQuery,
    AndWhereStep,
    DeleteAllRows,
    DeleteRows,
    FilteredScan,
    InsertRow,
    LimitStep,
    OrderStep,
    OrWhereInStep,
    OrWhereStep,
    RawQuery,
    ScanStep,
    SelectStep,
    StarterStep,
    TableScan,
    UpdateRows,
)
from ..exceptions import BackendError
from ..query_object import (
    BetweenClause,
    ChainStarter,
    Comparator,
    ComparisonClause,
    InClause,
    LikeClause,
    OrderTerm,
    QueryKey,
    SortDirection,
)
from ..sqlalchemy_backend import SQLAlchemyBackend
from ..type_coercion import DateLiteral
from .test_helpers import ITEMS_TABLE, create_sqlite_db


def _starter(key: QueryKey, clause: Any) -> StarterStep:
    return StarterStep(ChainStarter(key, clause))


class SQLAlchemyBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = SQLAlchemyBackend(create_sqlite_db())

    def _scan_ids(self, *steps: ScanStep) -> List[int]:
        rows = self.backend.execute(FilteredScan(ITEMS_TABLE, (SelectStep(("ID",)),) + steps))
        return [row["ID"] for row in rows]

    def test_unfiltered_scans(self) -> None:
        rows = self.backend.execute(FilteredScan(ITEMS_TABLE, ()))
        self.assertEqual([1, 2, 3, 4], [row["ID"] for row in rows])
        self.assertEqual(
            {"ID", "NAME", "NUMBER", "ACTIVE", "CREATED", "PAYLOAD"}, set(rows[0])
        )
        self.assertEqual(b"\x01\x02", rows[0]["PAYLOAD"])

        self.assertEqual(
            [{"ID": 1, "NAME": "Filip"}],
            self.backend.execute(TableScan(ITEMS_TABLE, columns=("ID", "NAME"), limit=1)),
        )

    def test_starter_clauses(self) -> None:
        self.assertEqual(
            [2],
            self._scan_ids(
                _starter(QueryKey.WHERE, ComparisonClause("NAME", Comparator.EQ, "Ana"))
            ),
        )
        self.assertEqual(
            [1, 3, 4],
            self._scan_ids(
                _starter(QueryKey.WHERE_NOT, ComparisonClause("NAME", Comparator.EQ, "Ana"))
            ),
        )
        self.assertEqual(
            [2, 4],
            self._scan_ids(_starter(QueryKey.WHERE, ComparisonClause("NUMBER", Comparator.LT, 8))),
        )
        self.assertEqual(
            [3], self._scan_ids(_starter(QueryKey.WHERE_LIKE, LikeClause("NAME", "M%")))
        )
        self.assertEqual(
            [1, 4], self._scan_ids(_starter(QueryKey.WHERE_IN, InClause("ID", (1, 4, 8))))
        )
        self.assertEqual(
            [2, 3], self._scan_ids(_starter(QueryKey.WHERE_NOT_IN, InClause("ID", (1, 4))))
        )

    def test_between_clauses(self) -> None:
        self.assertEqual(
            [1, 2, 3],
            self._scan_ids(_starter(QueryKey.WHERE_BETWEEN, BetweenClause("NUMBER", 7, 9))),
        )
        self.assertEqual(
            [4],
            self._scan_ids(_starter(QueryKey.WHERE_NOT_BETWEEN, BetweenClause("NUMBER", 7, 9))),
        )

    def test_chain_extensions_apply_in_order(self) -> None:
        # (NAME = 'Filip' AND NUMBER > 8) OR NAME = 'Ana' OR ID IN (4)
        ids = self._scan_ids(
            _starter(QueryKey.WHERE, ComparisonClause("NAME", Comparator.EQ, "Filip")),
            AndWhereStep(ComparisonClause("NUMBER", Comparator.GT, 8)),
            OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")),
            OrWhereInStep(InClause("ID", (4,))),
        )
        self.assertEqual([1, 2, 4], ids)

        # (NUMBER = 9 AND ACTIVE = 'N') OR NAME = 'Ana'
        ids = self._scan_ids(
            _starter(QueryKey.WHERE, ComparisonClause("NUMBER", Comparator.EQ, 9)),
            AndWhereStep(ComparisonClause("ACTIVE", Comparator.EQ, "N")),
            OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")),
        )
        self.assertEqual([2], ids)

    def test_extension_without_starter(self) -> None:
        self.assertEqual(
            [3], self._scan_ids(OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Marko")))
        )

    def test_order_and_limit(self) -> None:
        ids = self._scan_ids(
            LimitStep(3),
            OrderStep(
                (OrderTerm("NUMBER", SortDirection.DESC), OrderTerm("ID", SortDirection.ASC))
            ),
        )
        self.assertEqual([1, 3, 2], ids)
        self.assertEqual([], self._scan_ids(LimitStep(0)))

    def test_date_literals(self) -> None:
        self.assertEqual(
            [3, 4],
            self._scan_ids(
                _starter(
                    QueryKey.WHERE,
                    ComparisonClause(
                        "CREATED", Comparator.GT, DateLiteral("2020-06-01", raw=False)
                    ),
                )
            ),
        )
        # Raw literals are inlined as SQL expressions.
        self.assertEqual(
            [4],
            self._scan_ids(
                _starter(
                    QueryKey.WHERE,
                    ComparisonClause(
                        "CREATED", Comparator.GT, DateLiteral("date('2021-01-01')", raw=True)
                    ),
                )
            ),
        )

    def test_aggregates(self) -> None:
        self.assertEqual(
            [{"MAX": 9}], self.backend.execute(AggregateQuery(ITEMS_TABLE, QueryKey.MAX, "NUMBER"))
        )
        self.assertEqual(
            [{"MIN": 1}], self.backend.execute(AggregateQuery(ITEMS_TABLE, QueryKey.MIN, "ID"))
        )

    def test_raw_query(self) -> None:
        self.assertEqual(
            [{"NAME": "Ana"}],
            self.backend.execute(RawQuery("SELECT NAME FROM ITEMS WHERE ID = :id", {"id": 2})),
        )

    def test_insert_returns_new_id(self) -> None:
        new_id = self.backend.execute(
            InsertRow(ITEMS_TABLE, {"NAME": "Luka", "NUMBER": 3}, id_column="ID")
        )
        self.assertEqual(5, new_id)

        new_id = self.backend.execute(
            InsertRow(
                ITEMS_TABLE,
                {
                    "ID": 10,
                    "NAME": "Maja",
                    "CREATED": DateLiteral("datetime('2022-01-01')", raw=True),
                },
                id_column="ID",
            )
        )
        self.assertEqual(10, new_id)
        self.assertEqual(
            [{"CREATED": "2022-01-01 00:00:00"}],
            self.backend.execute(RawQuery("SELECT CREATED FROM ITEMS WHERE ID = 10")),
        )

    def test_update_and_delete_return_row_counts(self) -> None:
        self.assertEqual(
            2,
            self.backend.execute(
                UpdateRows(
                    ITEMS_TABLE, ComparisonClause("ACTIVE", Comparator.EQ, "Y"), {"NUMBER": 0}
                )
            ),
        )
        self.assertEqual(
            [1, 3],
            self._scan_ids(_starter(QueryKey.WHERE, ComparisonClause("NUMBER", Comparator.EQ, 0))),
        )

        self.assertEqual(
            0,
            self.backend.execute(
                DeleteRows(ITEMS_TABLE, ComparisonClause("ID", Comparator.EQ, 42))
            ),
        )
        self.assertEqual(
            1,
            self.backend.execute(DeleteRows(ITEMS_TABLE, ComparisonClause("ID", Comparator.EQ, 2))),
        )
        self.assertEqual(3, self.backend.execute(DeleteAllRows(ITEMS_TABLE)))
        self.assertEqual([], self.backend.execute(TableScan(ITEMS_TABLE)))

    def test_schema_qualified_tables(self) -> None:
        backend = SQLAlchemyBackend(create_sqlite_db(), schema="main")
        self.assertEqual(
            [{"MAX": 4}], backend.execute(AggregateQuery(ITEMS_TABLE, QueryKey.MAX, "ID"))
        )

    def test_engine_errors_become_backend_errors(self) -> None:
        with self.assertRaises(BackendError):
            self.backend.execute(FilteredScan("MISSING", ()))
        with self.assertRaises(BackendError):
            self.backend.execute(
                UpdateRows(ITEMS_TABLE, ComparisonClause("ID", Comparator.EQ, 1), {"BOGUS": 1})
            )
        with self.assertRaises(BackendError):
            self.backend.execute(RawQuery("SELECT * FROM"))

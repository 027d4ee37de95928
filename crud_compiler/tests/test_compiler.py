# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, Dict
import unittest

from ..compiler.compiler_frontend import (
    AggregatePlan,
    ChainBuilder,
    ChainState,
    compile_query,
    rewrite_clause,
)
from ..compiler.operations import (
    AggregateQuery,
    AndWhereStep,
    FilteredScan,
    LimitStep,
    OrderStep,
    OrWhereInStep,
    OrWhereStep,
    SelectStep,
    StarterStep,
)
from ..compiler.validation import validate_query
from ..dialects import ORACLE
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
from ..query_running import run_query, run_raw_query
from ..type_coercion import DateLiteral
from ..typedefs import ErrorKind, Failure, Success
from .test_helpers import ITEMS_TABLE, ITEMS_TABLE_SCHEMA, RecordingBackend, get_test_config


def _compile(raw_query: Dict[str, Any], **config_kwargs: Any) -> Any:
    validation_result = validate_query(raw_query)
    if not isinstance(validation_result, Success):
        raise AssertionError(f"Expected a valid query, got {validation_result}.")
    return compile_query(
        ITEMS_TABLE, validation_result.value, ITEMS_TABLE_SCHEMA, get_test_config(**config_kwargs)
    )


class ChainBuilderTests(unittest.TestCase):
    def test_state_transitions(self) -> None:
        builder = ChainBuilder(ITEMS_TABLE)
        self.assertEqual(ChainState.EMPTY, builder.state)

        builder.add(SelectStep(("ID",)))
        self.assertEqual(ChainState.EMPTY, builder.state)

        starter = ChainStarter(QueryKey.WHERE, ComparisonClause("ID", Comparator.EQ, 1))
        builder.add(StarterStep(starter))
        self.assertEqual(ChainState.STARTED, builder.state)

        builder.add(AndWhereStep(ComparisonClause("NUMBER", Comparator.GT, 5)))
        builder.add(AndWhereStep(ComparisonClause("NUMBER", Comparator.LT, 10)))
        builder.add(OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")))
        builder.add(OrWhereInStep(InClause("ID", (3, 4))))
        self.assertEqual(ChainState.EXTENDED, builder.state)

        builder.add(LimitStep(10))
        builder.add(OrderStep((OrderTerm("ID", SortDirection.ASC),)))

        scan = builder.build()
        self.assertEqual(ChainState.TERMINAL, builder.state)
        self.assertEqual(ITEMS_TABLE, scan.table)
        self.assertEqual(8, len(scan.steps))

    def test_extension_opens_empty_chain(self) -> None:
        builder = ChainBuilder(ITEMS_TABLE)
        builder.add(OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")))
        self.assertEqual(ChainState.EXTENDED, builder.state)

    def test_out_of_order_steps_are_refused(self) -> None:
        starter = StarterStep(
            ChainStarter(QueryKey.WHERE, ComparisonClause("ID", Comparator.EQ, 1))
        )

        builder = ChainBuilder(ITEMS_TABLE)
        builder.add(OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")))
        with self.assertRaises(AssertionError):
            builder.add(AndWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")))

        builder = ChainBuilder(ITEMS_TABLE)
        builder.add(LimitStep(1))
        with self.assertRaises(AssertionError):
            builder.add(starter)

        builder = ChainBuilder(ITEMS_TABLE)
        builder.add(starter)
        with self.assertRaises(AssertionError):
            builder.add(starter)

        builder = ChainBuilder(ITEMS_TABLE)
        builder.add(LimitStep(1))
        with self.assertRaises(AssertionError):
            builder.add(LimitStep(2))

    def test_built_chain_is_terminal(self) -> None:
        builder = ChainBuilder(ITEMS_TABLE)
        builder.build()
        with self.assertRaises(AssertionError):
            builder.add(LimitStep(1))
        with self.assertRaises(AssertionError):
            builder.build()


class CompilerTests(unittest.TestCase):
    def test_compile_full_chain_in_fixed_order(self) -> None:
        raw_query = {
            "ORDER": [{"column": "NAME", "order": "desc"}],
            "LIMIT": "2",
            "OR_WHERE_IN": [{"COLUMN": "ID", "VALUES": ["3"]}],
            "OR_WHERE": [{"COLUMN": "NAME", "VALUE": "Ana"}],
            "AND_WHERE": [{"COLUMN": "NUMBER", "COMPARATOR": "GT", "VALUE": "5"}],
            "WHERE_NOT": {"COLUMN": "NAME", "VALUE": "Filip"},
            "SELECT": ["ID", "NAME"],
        }
        expected_scan = FilteredScan(
            ITEMS_TABLE,
            (
                SelectStep(("ID", "NAME")),
                StarterStep(
                    ChainStarter(
                        QueryKey.WHERE_NOT, ComparisonClause("NAME", Comparator.EQ, "Filip")
                    )
                ),
                AndWhereStep(ComparisonClause("NUMBER", Comparator.GT, 5)),
                OrWhereStep(ComparisonClause("NAME", Comparator.EQ, "Ana")),
                OrWhereInStep(InClause("ID", (3,))),
                LimitStep(2),
                OrderStep((OrderTerm("NAME", SortDirection.DESC),)),
            ),
        )
        self.assertEqual(Success(expected_scan), _compile(raw_query))

    def test_aggregate_short_circuit(self) -> None:
        result = _compile({"MAX": "ID", "WHERE": {"COLUMN": "NAME", "VALUE": "Ana"}})
        self.assertEqual(
            Success(AggregatePlan(AggregateQuery(ITEMS_TABLE, QueryKey.MAX, "ID"))), result
        )

    def test_timestamp_values_become_date_literals(self) -> None:
        result = _compile(
            {"WHERE": {"COLUMN": "CREATED", "COMPARATOR": "GT", "VALUE": "2020-06-01T13:45:00"}}
        )
        starter_step = result.value.steps[0]
        self.assertEqual(
            ComparisonClause("CREATED", Comparator.GT, DateLiteral("2020-06-01", raw=False)),
            starter_step.starter.clause,
        )

        result = _compile(
            {"WHERE_BETWEEN": {"COLUMN": "CREATED", "VALUES": ["2020-01-01", "2020-12-31"]}},
            dialect=ORACLE,
        )
        self.assertEqual(
            BetweenClause(
                "CREATED",
                DateLiteral("TO_DATE('01-JAN-2020', 'DD-MON-YYYY')", raw=True),
                DateLiteral("TO_DATE('31-DEC-2020', 'DD-MON-YYYY')", raw=True),
            ),
            result.value.steps[0].starter.clause,
        )

        result = _compile(
            {"WHERE_BETWEEN": {"COLUMN": "CREATED", "VALUES": ["20200101", "20201231"]}}
        )
        self.assertEqual(
            BetweenClause(
                "CREATED",
                DateLiteral("2020-01-01", raw=False),
                DateLiteral("2020-12-31", raw=False),
            ),
            result.value.steps[0].starter.clause,
        )

        # Numeric strings that also read as compact dates compare as numbers on number columns.
        result = _compile({"WHERE_BETWEEN": {"COLUMN": "NUMBER", "VALUES": ["2020", "20201231"]}})
        self.assertEqual(
            BetweenClause("NUMBER", 2020, 20201231), result.value.steps[0].starter.clause
        )

    def test_malformed_dates_fail_compilation(self) -> None:
        result = _compile({"WHERE": {"COLUMN": "CREATED", "VALUE": "yesterday"}})
        self.assertIsInstance(result, Failure)
        self.assertEqual(ErrorKind.COERCION, result.kind)

    def test_boolean_and_number_values_are_rewritten(self) -> None:
        result = _compile(
            {
                "WHERE_IN": {"COLUMN": "ACTIVE", "VALUES": ["true"]},
                "OR_WHERE": [{"COLUMN": "NUMBER", "VALUE": "9"}, {"COLUMN": "NAME", "VALUE": "7"}],
            }
        )
        steps = result.value.steps
        self.assertEqual(InClause("ACTIVE", ("Y",)), steps[0].starter.clause)
        self.assertEqual(ComparisonClause("NUMBER", Comparator.EQ, 9), steps[1].clause)
        # String columns keep numeric-looking strings.
        self.assertEqual(ComparisonClause("NAME", Comparator.EQ, "7"), steps[2].clause)

    def test_like_patterns_are_not_rewritten(self) -> None:
        config = get_test_config()
        clause = LikeClause("CREATED", "2020%")
        self.assertIs(clause, rewrite_clause(clause, ITEMS_TABLE_SCHEMA, config))

    def test_unknown_columns_and_missing_schema_are_not_rewritten(self) -> None:
        config = get_test_config()
        clause = ComparisonClause("UNKNOWN", Comparator.EQ, "true")
        self.assertIs(clause, rewrite_clause(clause, ITEMS_TABLE_SCHEMA, config))

        clause = ComparisonClause("ACTIVE", Comparator.EQ, True)
        self.assertIs(clause, rewrite_clause(clause, None, config))

    def test_column_names_match_ignoring_case(self) -> None:
        config = get_test_config()
        clause = ComparisonClause("active", Comparator.EQ, False)
        self.assertEqual(
            ComparisonClause("active", Comparator.EQ, "N"),
            rewrite_clause(clause, ITEMS_TABLE_SCHEMA, config),
        )


class QueryRunningTests(unittest.TestCase):
    def test_aggregate_then_lookup(self) -> None:
        full_row = {"ID": 4, "NAME": "Ivana"}
        backend = RecordingBackend([{"MAX": 4}], [full_row])
        plan = AggregatePlan(AggregateQuery(ITEMS_TABLE, QueryKey.MAX, "ID"))

        self.assertEqual(Success([full_row]), run_query(backend, plan))
        aggregate_operation, lookup_operation = backend.executed_operations
        self.assertEqual(plan.aggregate, aggregate_operation)
        self.assertEqual(
            FilteredScan(
                ITEMS_TABLE,
                (
                    StarterStep(
                        ChainStarter(QueryKey.WHERE, ComparisonClause("ID", Comparator.EQ, 4))
                    ),
                ),
            ),
            lookup_operation,
        )

    def test_aggregate_of_empty_table(self) -> None:
        backend = RecordingBackend([{"MIN": None}])
        plan = AggregatePlan(AggregateQuery(ITEMS_TABLE, QueryKey.MIN, "ID"))
        self.assertEqual(Success([]), run_query(backend, plan))
        self.assertEqual(1, len(backend.executed_operations))

    def test_backend_errors_become_failures(self) -> None:
        backend = RecordingBackend(BackendError("connection lost"))
        result = run_query(backend, FilteredScan(ITEMS_TABLE, ()))
        self.assertEqual(Failure(ErrorKind.BACKEND, "connection lost"), result)

    def test_run_raw_query_reports_first_failed_stage(self) -> None:
        config = get_test_config()
        backend = RecordingBackend()

        result = run_raw_query(backend, ITEMS_TABLE, {"order": ["ID"]}, ITEMS_TABLE_SCHEMA, config)
        self.assertEqual(ErrorKind.TRANSLATION, result.kind)

        result = run_raw_query(backend, ITEMS_TABLE, {"BOGUS": 1}, ITEMS_TABLE_SCHEMA, config)
        self.assertEqual(ErrorKind.VALIDATION, result.kind)

        result = run_raw_query(
            backend, ITEMS_TABLE, "WHERE[CREATED]=soon", ITEMS_TABLE_SCHEMA, config
        )
        self.assertEqual(ErrorKind.COERCION, result.kind)

        self.assertEqual([], backend.executed_operations)

    def test_run_raw_query(self) -> None:
        rows = [{"ID": 1}]
        backend = RecordingBackend(rows)
        result = run_raw_query(
            backend, ITEMS_TABLE, "WHERE[NAME]=Filip&LIMIT=1", ITEMS_TABLE_SCHEMA, get_test_config()
        )
        self.assertEqual(Success(rows), result)
        (operation,) = backend.executed_operations
        self.assertEqual(
            FilteredScan(
                ITEMS_TABLE,
                (
                    StarterStep(
                        ChainStarter(
                            QueryKey.WHERE, ComparisonClause("NAME", Comparator.EQ, "Filip")
                        )
                    ),
                    LimitStep(1),
                ),
            ),
            operation,
        )

# Copyright 2021-present Kensho Technologies, LLC.
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, List, Union

from .compiler.operations import Operation


Row = Dict[str, Any]
OperationResult = Union[List[Row], int, Any]


class RelationalBackend(metaclass=ABCMeta):
    """Abstract executor of relational operations against one database.

    The compiler and the schema cache never emit SQL themselves: they describe what to run
    with the operations in crud_compiler.compiler.operations, and a backend turns each of them
    into statements for its engine.

    Depending on the operation, execute() returns:
        - TableScan, FilteredScan, AggregateQuery, RawQuery: a list of rows, each a dict mapping
          column name to value;
        - InsertRow: the id of the inserted row;
        - UpdateRows, DeleteRows, DeleteAllRows: the number of affected rows.
    """

    @abstractmethod
    def execute(self, operation: Operation) -> OperationResult:
        """Execute the operation and return its result.

        Args:
            operation: the relational operation to execute

        Returns:
            the result of the operation, as described in the class docstring

        Raises:
            BackendError: if the engine reports a failure while executing the operation
        """
        raise NotImplementedError()

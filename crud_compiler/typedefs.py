# Copyright 2021-present Kensho Technologies, LLC.
"""Result values passed along the query pipeline instead of raised exceptions."""
from dataclasses import dataclass
from enum import Enum, unique
from types import MappingProxyType
from typing import Any, Generic, Mapping, Type, TypeVar, Union

from .exceptions import (
    BackendError,
    CatalogError,
    CoercionError,
    CrudCompilerError,
    DiscoveryError,
    TranslationError,
    ValidationError,
)
from .global_utils import assert_set_equality


@unique
class ErrorKind(Enum):
    """The kinds of failure a query pipeline step can report."""

    TRANSLATION = "translation"
    VALIDATION = "validation"
    COERCION = "coercion"
    BACKEND = "backend"
    DISCOVERY = "discovery"
    CATALOG = "catalog"


_ERROR_KIND_TO_EXCEPTION: Mapping[ErrorKind, Type[CrudCompilerError]] = MappingProxyType(
    {
        ErrorKind.TRANSLATION: TranslationError,
        ErrorKind.VALIDATION: ValidationError,
        ErrorKind.COERCION: CoercionError,
        ErrorKind.BACKEND: BackendError,
        ErrorKind.DISCOVERY: DiscoveryError,
        ErrorKind.CATALOG: CatalogError,
    }
)
assert_set_equality(set(_ERROR_KIND_TO_EXCEPTION.keys()), set(ErrorKind))


T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """The successful outcome of a pipeline step."""

    value: T


@dataclass(frozen=True)
class Failure:
    """The failed outcome of a pipeline step, with a human-readable description."""

    kind: ErrorKind
    detail: str

    @classmethod
    def from_exception(cls, error: CrudCompilerError) -> "Failure":
        """Convert a raised pipeline exception into a failure value of the matching kind."""
        for kind, exception_class in _ERROR_KIND_TO_EXCEPTION.items():
            if type(error) is exception_class:
                return cls(kind, str(error))

        raise AssertionError(f"No failure kind is known for exception {error!r}.")

    @property
    def exception_class(self) -> Type[CrudCompilerError]:
        """Return the exception class used to report this failure."""
        return _ERROR_KIND_TO_EXCEPTION[self.kind]

    def to_exception(self, prefix: str) -> CrudCompilerError:
        """Build the exception reporting this failure, with the given operation prefix."""
        return self.exception_class(f"{prefix}: {self.detail}")


Result = Union[Success[Any], Failure]


def is_failure(result: Result) -> bool:
    """Return True if the result is a Failure."""
    return isinstance(result, Failure)

# Copyright 2021-present Kensho Technologies, LLC.
class CrudCompilerError(Exception):
    """Generic error when translating, compiling or running a CRUD query."""


class TranslationError(CrudCompilerError):
    """Exception raised when the provided filter could not be translated into a query object.

    For example:
    - an order entry does not end with one of the ASC or DESC keywords;
    - a URL-embedded filter is not decodable as JSON.
    """


class ValidationError(CrudCompilerError):
    """Exception raised when the provided query object is malformed.

    This could be due to many reasons, such as:
    - the query object contains a key outside of the recognized key set;
    - a clause is missing its column, value or values;
    - a comparator other than EQ, GT or LT is requested;
    - the limit or order is not well-formed;
    - more than one chain starter clause is present.
    """


class CoercionError(CrudCompilerError):
    """Exception raised when a date, boolean or buffer value has a malformed representation."""


class BackendError(CrudCompilerError):
    """Exception raised when the relational engine failed to execute an operation."""


class DiscoveryError(CrudCompilerError):
    """Exception raised when a table's schema could not be introspected."""


class CatalogError(CrudCompilerError):
    """Exception raised when the persisted schema catalog could not be read or written.

    Catalog failures are fatal to the table-info operation that triggered them: the catalog is
    never partially written, so the operation is aborted and the previous catalog file is kept.
    """

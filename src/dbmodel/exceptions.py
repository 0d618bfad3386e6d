"""
Database-specific exception classes.
"""


class DatabaseError(Exception):
    """Base class for all dbmodel errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class QueryError(DatabaseError):
    """Error in statement syntax or execution.

    Never raised by the statement methods themselves; instances are handed to
    the registered error handler.
    """


class TypeConversionError(DatabaseError):
    """Error converting a fetched value into its coarse field type.
    """


class ValidationError(DatabaseError):
    """Error in caller input (usage error).
    """


class UnknownFieldError(ValidationError):
    """Field not present in the table when strict field checking is on.
    """

    def __init__(self, table: str, fields: list[str]) -> None:
        self.table = table
        self.fields = fields
        super().__init__(f"Unknown field(s) for table '{table}': {', '.join(fields)}")

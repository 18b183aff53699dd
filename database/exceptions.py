"""Database exceptions"""


class DatabaseError(Exception):
    """Base class for database errors."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema files are missing, invalid or fail to apply."""
    pass

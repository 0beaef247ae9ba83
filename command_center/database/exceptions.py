"""Exceptions raised by the persistence layer."""


class DatabaseError(Exception):
    """Base class for persistence failures."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Could not reach PostgreSQL."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Unique or foreign key constraint rejected the write."""
    pass


class DatabaseOperationError(DatabaseError):
    """A query or write failed for any other reason."""
    pass


class EntityNotFoundError(DatabaseError):
    """Job, staff member, work type or stage does not exist."""
    pass


class ValidationError(DatabaseError):
    """Input rejected before touching the database (e.g. a bad reorder list)."""
    pass

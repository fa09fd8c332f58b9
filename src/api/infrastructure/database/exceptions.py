"""Database-specific exceptions."""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when the database cannot be configured (e.g. no DATABASE_URL).

    Not retryable: the process must not serve traffic.
    """

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the database cannot be reached."""

    pass


class DatabaseInitializationError(DatabaseConnectionError):
    """Raised when every connection attempt of an initialization failed."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts

"""Directory-specific exceptions for error handling."""


class DirectoryError(Exception):
    """Base exception for all directory mapping and authorization errors."""
    pass


class ConfigurationError(DirectoryError):
    """Configuration is malformed or incomplete.

    Raised when a mapping row cannot be parsed, a relation rule has no base
    path, or a role pattern needs a variable the request context lacks.

    Attributes:
        key: Configuration key that failed (source path, relation, pattern)
        message: Human readable reason
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        self.message = message
        super().__init__(f"{key}: {message}" if key else message)

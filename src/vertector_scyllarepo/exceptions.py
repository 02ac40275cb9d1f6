"""
Exception hierarchy for the ScyllaDB repository layer.

Mapping errors (configuration, schema, validation, decoding) are raised by
the core. The ``Store*`` errors are raised by the ScyllaDB executor when it
wraps driver exceptions; the repository propagates those unchanged.
"""

import logging
from typing import Any, Sequence

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """
    Base exception for repository errors.

    Wraps underlying exceptions with additional context and ensures
    proper logging.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize repository error.

        Args:
            message: Human-readable error message
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error
        self.message = message

        if original_error:
            logger.error(
                f"{type(self).__name__}: {message}",
                exc_info=original_error,
                extra={
                    "error_type": type(original_error).__name__,
                    "error_message": str(original_error)
                }
            )
        else:
            logger.error(f"{type(self).__name__}: {message}")

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.original_error:
            return f"{self.message} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed error representation."""
        return f"{self.__class__.__name__}(message={self.message!r}, original_error={self.original_error!r})"


class ConfigurationError(RepositoryError):
    """
    Raised when the repository is misconfigured.

    For example an unsupported naming convention pairing, or a table name
    that is not a valid CQL identifier. Surfaces at startup.
    """


class SchemaError(RepositoryError):
    """
    Raised when a record type's key declaration is malformed.

    This is always detected while building the key schema descriptor, so it
    surfaces when the repository is constructed, never on a later call.
    """

    def __init__(self, message: str, record_type: str | None = None, original_error: Exception | None = None):
        self.record_type = record_type
        if record_type:
            message = f"Invalid key schema for '{record_type}': {message}"
        super().__init__(message, original_error)


class ValidationError(RepositoryError):
    """
    Raised when a caller supplies invalid input.

    This includes:
    - Wrong number of key values for a point operation or partition scan
    - A missing or None key field value
    - A record of the wrong type
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None, original_error: Exception | None = None):
        self.field = field
        self.value = value
        if field:
            message = f"Validation error for '{field}': {message}"
        super().__init__(message, original_error)


class DecodingError(RepositoryError):
    """
    Raised when a row cannot be converted back into a record.

    A missing column usually means the table and the record type have
    drifted apart. Not retried.
    """

    def __init__(
        self,
        message: str,
        missing_columns: Sequence[str] = (),
        original_error: Exception | None = None
    ):
        self.missing_columns = tuple(missing_columns)
        if self.missing_columns:
            message = f"{message} (missing columns: {', '.join(self.missing_columns)})"
        super().__init__(message, original_error)


# Executor errors - wrap Cassandra driver exceptions with context
class StoreError(RepositoryError):
    """Base class for errors raised while talking to the cluster."""


class StoreConnectionError(StoreError):
    """
    Raised when connection to cluster fails or no hosts are available.

    This is a fatal error that usually requires checking:
    - Network connectivity
    - ScyllaDB cluster status
    - Contact points configuration
    """

    def __init__(self, message: str = "Failed to connect to ScyllaDB cluster", original_error: Exception | None = None):
        super().__init__(message, original_error)


class StoreQueryError(StoreError):
    """
    Raised when a query fails due to server-side issues.

    Includes coordination failures, read/write failures and invalid requests.
    """

    def __init__(self, message: str, original_error: Exception | None = None, query: str | None = None):
        self.query = query
        if query:
            message = f"{message} [Query: {query[:100]}...]"
        super().__init__(message, original_error)


class StoreTimeoutError(StoreError):
    """
    Raised when an operation times out.

    Indicates that replicas failed to respond before the configured timeout.
    """

    def __init__(
        self,
        message: str = "Operation timed out",
        original_error: Exception | None = None,
        timeout_seconds: float | None = None,
        operation_type: str | None = None
    ):
        self.timeout_seconds = timeout_seconds
        self.operation_type = operation_type

        details = []
        if operation_type:
            details.append(f"operation={operation_type}")
        if timeout_seconds:
            details.append(f"timeout={timeout_seconds}s")

        if details:
            message = f"{message} ({', '.join(details)})"

        super().__init__(message, original_error)


class StoreUnavailableError(StoreError):
    """
    Raised when required replicas are unavailable.

    Not enough live replicas exist to satisfy the consistency level.
    """

    def __init__(
        self,
        message: str = "Required replicas unavailable",
        original_error: Exception | None = None,
        consistency_level: str | None = None,
        required_replicas: int | None = None,
        alive_replicas: int | None = None
    ):
        self.consistency_level = consistency_level
        self.required_replicas = required_replicas
        self.alive_replicas = alive_replicas

        details = []
        if consistency_level:
            details.append(f"consistency={consistency_level}")
        if required_replicas is not None and alive_replicas is not None:
            details.append(f"required={required_replicas}, alive={alive_replicas}")

        if details:
            message = f"{message} ({', '.join(details)})"

        super().__init__(message, original_error)


class StoreAuthenticationError(StoreError):
    """Raised when authentication or authorization fails."""

    def __init__(
        self,
        message: str = "Authentication or authorization failed",
        original_error: Exception | None = None,
        username: str | None = None
    ):
        self.username = username
        if username:
            message = f"{message} for user '{username}'"
        super().__init__(message, original_error)

"""Custom exceptions for the cluster controller."""


class ClusterControllerError(Exception):
    """Base exception for all cluster controller errors."""

    def __init__(self, message: str, details: str | None = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ObjectStoreError(ClusterControllerError):
    """Exception raised for object store (API server) failures."""

    pass


class NotFoundError(ObjectStoreError):
    """Exception raised when a requested object does not exist."""

    pass


class ConflictError(ObjectStoreError):
    """Exception raised when a write is based on a stale resourceVersion."""

    pass


class ConfigurationError(ClusterControllerError):
    """Exception raised for configuration errors."""

    pass


class ValidationError(ClusterControllerError):
    """Exception raised when an object cannot be parsed."""

    pass


class ReconcileError(ClusterControllerError):
    """Aggregate of the errors collected during one reconcile cycle."""

    def __init__(self, errors: list[Exception], details: str | None = None):
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ", ".join(str(e) for e in self.errors) + "]"
        super().__init__(message, details)

    def is_conflict(self) -> bool:
        """Return True if every collected error is an optimistic-concurrency conflict."""
        return bool(self.errors) and all(isinstance(e, ConflictError) for e in self.errors)

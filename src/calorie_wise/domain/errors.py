"""Domain-level exceptions."""


class ConfigurationError(RuntimeError):
    """Raised when a backend required for an operation is not configured."""


class PersistenceError(RuntimeError):
    """Raised when the document store rejects or fails a request."""


class InactiveSessionError(RuntimeError):
    """Raised when data is changed before signing in or choosing guest mode."""

"""Exception types raised at the logging core's public boundaries."""


class LoggingError(Exception):
    """Base class for logsink errors."""


class ConfigurationError(LoggingError):
    """Raised when initialization settings are invalid."""


class NotInitializedError(LoggingError):
    """Raised when an operation needs an initialized supervisor."""


class EventFormatError(LoggingError, ValueError):
    """Raised when a serialized line cannot be parsed back into an event."""

from typing import Any, Optional


class QueryCompilationError(Exception):
    """Raised when query compilation fails."""


class ConversionError(QueryCompilationError, ValueError):
    """A value could not be converted for the operator it was given to."""

    def __init__(self, message: str, field: Optional[str] = None, operator: Optional[Any] = None):
        self.field = field
        self.operator = getattr(operator, "value", operator)

        if field is not None and self.operator is not None:
            message = f'Invalid value for "{field}" with operator "{self.operator}": {message}'
        elif field is not None:
            message = f'Invalid value for "{field}": {message}'
        super().__init__(message)


class ConfigurationError(QueryCompilationError):
    """The requested executor is not configured."""


class DirectExecutionUnavailable(ConfigurationError):
    """Direct store execution was requested but is disabled, unconfigured or unreachable."""


class RemoteExecutionError(Exception):
    """The remote API answered with an error response."""

    def __init__(self, status_code: int, code: Optional[int], message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"Remote aggregation failed ({status_code}, code={code}): {message}")

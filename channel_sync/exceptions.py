"""
Exceptions raised by the collection and replication pipelines.
"""
from typing import Any, Dict, Optional


class ChannelSyncError(Exception):
    """
    Base exception for channel sync errors.

    Carries a machine-readable code and a details mapping so callers
    can log or serialize errors consistently.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class ValidationError(ChannelSyncError):
    """Raised when the telemetry API returns an unexpected response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(
            message=message,
            code='VALIDATION_ERROR',
            details={'status_code': status_code, 'response_text': response_text}
        )


class DatabaseError(ChannelSyncError):
    """Raised when a query fails. Wraps the underlying driver error."""

    def __init__(
        self,
        message: str,
        original_error: Optional[BaseException] = None,
        query: Optional[str] = None
    ):
        self.original_error = original_error
        self.query = query
        details: Dict[str, Any] = {}
        if original_error is not None:
            details['original_error'] = str(original_error)
        if query:
            details['query'] = ' '.join(query.split())
        super().__init__(message=message, code='DATABASE_ERROR', details=details)

    def __str__(self) -> str:
        if self.original_error is not None:
            return f"{self.message}: {self.original_error}"
        return self.message


class ConfigurationError(ChannelSyncError):
    """Raised when a configuration source cannot be loaded or is invalid."""

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(
            message=message,
            code='CONFIGURATION_ERROR',
            details={'errors': self.errors}
        )

"""
Error taxonomy for the processing pipeline.

Every error carries a client-safe message and the HTTP status it maps to.
Causes (library exceptions, filesystem errors) stay on the exception for
logging and are never rendered to clients.
"""

from typing import Optional


class ToolhubError(Exception):
    """Base class for all pipeline errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


# =============================================================================
# Validation (client errors)
# =============================================================================

class ValidationError(ToolhubError):
    """Bad input shape, type or size. Detected before any file write."""

    status_code = 400
    code = "BAD_REQUEST"


class NoInput(ValidationError):
    code = "NO_INPUT"


class UnsupportedMediaType(ValidationError):
    code = "UNSUPPORTED_MEDIA_TYPE"


class FileTooLarge(ValidationError):
    code = "FILE_TOO_LARGE"


class ArityViolation(ValidationError):
    code = "ARITY_VIOLATION"


class InvalidParameters(ValidationError):
    code = "INVALID_PARAMETERS"


class UnsupportedOperation(ValidationError):
    code = "UNSUPPORTED_OPERATION"


class InputRejected(ValidationError):
    """Raised by handlers when input content is unusable (not a bug in the handler)."""

    code = "INPUT_REJECTED"


# =============================================================================
# Server-side failures
# =============================================================================

class ExecutionError(ToolhubError):
    """The transformation raised or produced nothing usable."""

    code = "EXECUTION_FAILED"


class ExecutionTimeout(ExecutionError):
    code = "EXECUTION_TIMEOUT"


class PackagingError(ToolhubError):
    """Archive or filesystem failure after a successful transformation."""

    code = "PACKAGING_FAILED"


class NotFound(ToolhubError):
    """Grant missing, expired or mismatched. Deliberately uninformative."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "File not found or expired", cause: Optional[BaseException] = None):
        super().__init__(message, cause)

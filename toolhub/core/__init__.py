"""Service plumbing for toolhub: config, logging, errors and ASGI middleware."""

from toolhub.core.config import get, get_env, get_path, require_env
from toolhub.core.errors import (
    ArityViolation,
    ExecutionError,
    ExecutionTimeout,
    FileTooLarge,
    InputRejected,
    InvalidParameters,
    NoInput,
    NotFound,
    PackagingError,
    ToolhubError,
    UnsupportedMediaType,
    UnsupportedOperation,
    ValidationError,
)
from toolhub.core.logging_config import (
    CORRELATION_HEADER,
    configure_logging,
    get_correlation_id,
    get_logger,
    get_operation,
    set_correlation_id,
    set_operation,
    short_id,
)
from toolhub.core.middleware import ErrorBoundaryMiddleware, RequestContextMiddleware

__all__ = [
    "get",
    "get_env",
    "get_path",
    "require_env",
    "ToolhubError",
    "ValidationError",
    "NoInput",
    "UnsupportedMediaType",
    "FileTooLarge",
    "ArityViolation",
    "InvalidParameters",
    "UnsupportedOperation",
    "InputRejected",
    "ExecutionError",
    "ExecutionTimeout",
    "PackagingError",
    "NotFound",
    "CORRELATION_HEADER",
    "configure_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "get_operation",
    "set_operation",
    "short_id",
    "ErrorBoundaryMiddleware",
    "RequestContextMiddleware",
]

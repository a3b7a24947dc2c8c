"""
Standardized error handling for the screening bundle processor.

Input errors (malformed metadata or documents) are raised as
ProcessorError subclasses; everything else is returned as data. The
ErrorResult wrapper and ErrorHandler.wrap_operation let callers recover
from faults without letting them escape.
"""

import traceback
from typing import Optional, Any, Dict, Callable
from enum import Enum
import logging


class ErrorLevel(Enum):
    """Error severity levels."""
    CRITICAL = "critical"  # System failure, cannot continue
    ERROR = "error"  # Operation failed, but system can continue
    WARNING = "warning"  # Operation succeeded with issues
    INFO = "info"  # Informational message


class ErrorCode(Enum):
    """Standardized error codes for different error types."""

    # Metadata Errors (1xxx)
    METADATA_PARSE_ERROR = 1001
    METADATA_SCHEMA_ERROR = 1002
    UNKNOWN_RULE_TYPE = 1003
    UNSUPPORTED_PATH_SYNTAX = 1004
    METADATA_REFERENCE_ERROR = 1005

    # Document Errors (2xxx)
    INVALID_JSON = 2001
    INVALID_RESOURCE_TYPE = 2002
    EMPTY_BUNDLE = 2003

    # Extraction Errors (3xxx)
    EXTRACTION_FAILED = 3001

    # System Errors (4xxx)
    FILE_NOT_FOUND = 4001
    INVALID_ENGINE_STATE = 4002
    CONFIGURATION_ERROR = 4003


class ProcessorError(Exception):
    """Base exception class for processing errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        level: ErrorLevel = ErrorLevel.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize processor error.

        Args:
            message: Human-readable error message
            code: Error code from ErrorCode enum
            level: Severity level from ErrorLevel enum
            details: Additional error details as dictionary
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.level = level
        self.details = details or {}
        self.cause = cause

        if cause:
            self.details['original_error'] = str(cause)
            self.details['traceback'] = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            'message': self.message,
            'code': self.code.name,
            'level': self.level.value,
            'details': {k: v for k, v in self.details.items() if k != 'traceback'}
        }


class MetadataParseError(ProcessorError):
    """Rule metadata is malformed or structurally invalid."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.METADATA_PARSE_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message, code, ErrorLevel.ERROR, details, cause)


class DocumentParseError(ProcessorError):
    """The document to validate is not a parseable bundle."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_JSON,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message, code, ErrorLevel.ERROR, details, cause)


class EngineStateError(ProcessorError):
    """An engine operation was called in the wrong lifecycle state."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_ENGINE_STATE, ErrorLevel.ERROR, details)


class ErrorResult:
    """
    Standardized result wrapper for operations that may fail.

    Provides a consistent way to hand success/failure back to a caller
    without raising.
    """

    def __init__(
        self,
        success: bool,
        value: Optional[Any] = None,
        error: Optional[ProcessorError] = None
    ):
        self.success = success
        self.value = value
        self.error = error

    @classmethod
    def ok(cls, value: Any = None) -> 'ErrorResult':
        """Create a successful result."""
        return cls(success=True, value=value, error=None)

    @classmethod
    def fail(cls, error: ProcessorError) -> 'ErrorResult':
        """Create a failed result."""
        return cls(success=False, value=None, error=error)

    def unwrap(self) -> Any:
        """
        Get the value or raise the error.

        Returns:
            The value if successful

        Raises:
            ProcessorError if failed
        """
        if self.success:
            return self.value
        raise self.error

    def unwrap_or(self, default: Any) -> Any:
        """Get the value or return a default."""
        return self.value if self.success else default

    def __bool__(self) -> bool:
        return self.success


class ErrorHandler:
    """Centralized error handler with logging."""

    def __init__(self, logger: Optional[Any] = None):
        """
        Initialize error handler.

        Args:
            logger: Object exposing critical/error/warning/info (a
                ProcessingLogger or a logging.Logger). Defaults to the
                module logger.
        """
        self.logger = logger or logging.getLogger(__name__)

    def handle(self, error: ProcessorError) -> None:
        """
        Handle an error by logging it appropriately.

        Args:
            error: The error to handle
        """
        log_message = f"[{error.code.name}] {error.message}"

        if error.details:
            shown = {k: v for k, v in error.details.items() if k != 'traceback'}
            if shown:
                log_message += f" | Details: {shown}"

        if error.level == ErrorLevel.CRITICAL:
            self.logger.critical(log_message)
        elif error.level == ErrorLevel.ERROR:
            self.logger.error(log_message)
        elif error.level == ErrorLevel.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

    def wrap_operation(
        self,
        operation: Callable[..., Any],
        *args,
        error_code: ErrorCode = ErrorCode.EXTRACTION_FAILED,
        **kwargs
    ) -> ErrorResult:
        """
        Wrap an operation in error handling.

        Args:
            operation: The operation to execute
            *args: Arguments for the operation
            error_code: Code given to unexpected exceptions
            **kwargs: Keyword arguments for the operation

        Returns:
            ErrorResult with the operation result or error
        """
        try:
            return ErrorResult.ok(operation(*args, **kwargs))
        except ProcessorError as e:
            self.handle(e)
            return ErrorResult.fail(e)
        except Exception as e:
            name = getattr(operation, '__name__', 'operation')
            wrapped = ProcessorError(
                message=f"Unexpected error in {name}: {str(e)}",
                code=error_code,
                level=ErrorLevel.ERROR,
                cause=e
            )
            self.handle(wrapped)
            return ErrorResult.fail(wrapped)


# Convenience functions for common error scenarios

def invalid_json_error(what: str, cause: Exception) -> DocumentParseError:
    """Create a malformed document error."""
    return DocumentParseError(
        message=f"Invalid JSON in {what}: {cause}",
        code=ErrorCode.INVALID_JSON,
        details={'source': what},
        cause=cause
    )


def metadata_error(reason: str, cause: Optional[Exception] = None,
                   code: ErrorCode = ErrorCode.METADATA_PARSE_ERROR) -> MetadataParseError:
    """Create a metadata parse error."""
    return MetadataParseError(
        message=f"Failed to load validation metadata: {reason}",
        code=code,
        details={'reason': reason},
        cause=cause
    )

"""
Utilities Module

Components:
- logger.py: Centralized logging and per-call log trail
- error_handler.py: Error taxonomy and result wrapper
- json_utils.py: Helpers for the parsed document tree
"""

from .logger import ProcessingLogger, get_logger, create_call_logger
from .error_handler import (
    ErrorLevel,
    ErrorCode,
    ProcessorError,
    MetadataParseError,
    DocumentParseError,
    EngineStateError,
    ErrorResult,
    ErrorHandler,
)

__all__ = [
    "ProcessingLogger",
    "get_logger",
    "create_call_logger",
    "ErrorLevel",
    "ErrorCode",
    "ProcessorError",
    "MetadataParseError",
    "DocumentParseError",
    "EngineStateError",
    "ErrorResult",
    "ErrorHandler",
]

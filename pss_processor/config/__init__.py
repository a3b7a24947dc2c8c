"""
Configuration Module

Manages processor configuration and settings.

Components:
- constants.py: Rule kinds, error codes and other enums
- settings.py: Per-call options and process-wide defaults
"""

from .constants import (
    RuleType,
    ExpectedType,
    ValidationErrorCode,
    LogLevel,
    ScreeningType,
    EngineState,
)
from .settings import ValidationOptions, ProcessorSettings, get_settings

__all__ = [
    "RuleType",
    "ExpectedType",
    "ValidationErrorCode",
    "LogLevel",
    "ScreeningType",
    "EngineState",
    "ValidationOptions",
    "ProcessorSettings",
    "get_settings",
]

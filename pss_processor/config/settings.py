"""
Processor Settings

Per-call validation options and process-wide defaults. Defaults can be
overridden from environment variables (PSS_*) or a YAML file.
"""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_REGEX_ERROR_CODE, LogLevel


_TRUE_VALUES = {"1", "true", "yes", "on"}


class ValidationOptions(BaseModel):
    """Options supplied with a single validate/process call"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "strictDisplayMatch": True,
                "logLevel": "info"
            }
        }
    )

    strict_display_match: bool = Field(
        True,
        description="Report CodesMaster display mismatches as errors (otherwise only logged)"
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        description="Verbosity of the returned log trail"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ProcessorSettings(BaseModel):
    """Process-wide defaults"""

    strict_display_match: bool = Field(
        True,
        description="Default for ValidationOptions.strict_display_match"
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        description="Default for ValidationOptions.log_level"
    )

    regex_error_code: Optional[str] = Field(
        DEFAULT_REGEX_ERROR_CODE,
        description="Error code used by Regex rules that omit errorCode; "
                    "None requires every Regex rule to carry its own code"
    )

    metadata_cache_size: int = Field(
        16,
        ge=1,
        description="Number of parsed metadata documents kept by content hash"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("regex_error_code", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def default_options(self) -> ValidationOptions:
        """Build per-call options from these defaults."""
        return ValidationOptions(
            strict_display_match=self.strict_display_match,
            log_level=self.log_level
        )

    @classmethod
    def from_env(cls) -> "ProcessorSettings":
        """
        Build settings from environment variables.

        Recognized variables:
            PSS_STRICT_DISPLAY_MATCH: true/false
            PSS_LOG_LEVEL: error, warn, info, debug or verbose
            PSS_REGEX_ERROR_CODE: default Regex error code (empty disables the default)
            PSS_METADATA_CACHE_SIZE: integer

        Returns:
            ProcessorSettings with unset variables left at their defaults
        """
        values = {}

        strict = os.environ.get("PSS_STRICT_DISPLAY_MATCH")
        if strict is not None:
            values["strict_display_match"] = strict.strip().lower() in _TRUE_VALUES

        log_level = os.environ.get("PSS_LOG_LEVEL")
        if log_level:
            values["log_level"] = log_level

        if "PSS_REGEX_ERROR_CODE" in os.environ:
            values["regex_error_code"] = os.environ["PSS_REGEX_ERROR_CODE"]

        cache_size = os.environ.get("PSS_METADATA_CACHE_SIZE")
        if cache_size:
            values["metadata_cache_size"] = int(cache_size)

        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ProcessorSettings":
        """
        Load settings from a YAML file.

        Args:
            path: Path to a YAML mapping of setting names to values

        Returns:
            ProcessorSettings

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file does not contain a mapping
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError("Settings YAML must be a dictionary")

        return cls(**data)


_settings_instance: Optional[ProcessorSettings] = None


def get_settings() -> ProcessorSettings:
    """
    Get singleton settings, read from the environment on first use.

    Returns:
        ProcessorSettings instance
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = ProcessorSettings.from_env()
    return _settings_instance

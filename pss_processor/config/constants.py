"""
Application Constants and Enumerations

Defines the closed sets used throughout the processor: rule kinds,
expected value types, engine-assigned error codes, log levels,
screening types and engine states.

KEY DESIGN PRINCIPLES:

1. CLOSED RULE SET:
   - Rule kinds come from a fixed list
   - Unknown kinds are rejected when metadata is loaded, never mid-run

2. ALL-AT-ONCE VALIDATION:
   - Every rule of every scope is evaluated in a single pass
   - Errors accumulate; nothing short-circuits

3. DATA, NOT EXCEPTIONS:
   - Rule violations are returned as structured errors
   - Only malformed input surfaces as a hard failure
"""

from enum import Enum


class RuleType(str, Enum):
    """Rule kinds supported by the validation engine"""
    REQUIRED = "Required"
    FIXED_VALUE = "FixedValue"
    FIXED_CODING = "FixedCoding"
    ALLOWED_VALUES = "AllowedValues"
    CODES_MASTER = "CodesMaster"
    TYPE = "Type"
    REGEX = "Regex"
    REFERENCE = "Reference"
    CODE_SYSTEM = "CodeSystem"
    FULL_URL_ID_MATCH = "FullUrlIdMatch"


class ExpectedType(str, Enum):
    """Value types understood by Type rules"""
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    GUID = "guid"
    GUID_URI = "guid-uri"
    DATE = "date"
    DATETIME = "datetime"
    PIPE_STRING_ARRAY = "pipestring[]"
    ARRAY = "array"
    OBJECT = "object"


class ValidationErrorCode(str, Enum):
    """Error codes assigned by the engine"""
    # Document level
    INVALID_JSON = "INVALID_JSON"
    INVALID_RESOURCE_TYPE = "INVALID_RESOURCE_TYPE"
    EMPTY_BUNDLE = "EMPTY_BUNDLE"
    METADATA_PARSE_ERROR = "METADATA_PARSE_ERROR"

    # Rule violations
    MANDATORY_MISSING = "MANDATORY_MISSING"
    FIXED_VALUE_MISMATCH = "FIXED_VALUE_MISMATCH"
    FIXED_CODING_MISMATCH = "FIXED_CODING_MISMATCH"
    INVALID_CODE = "INVALID_CODE"
    UNKNOWN_QUESTION_CODE = "UNKNOWN_QUESTION_CODE"
    INVALID_QUESTION_DISPLAY = "INVALID_QUESTION_DISPLAY"
    INVALID_ANSWER_VALUE = "INVALID_ANSWER_VALUE"
    INVALID_SCREENING_TYPE_FOR_QUESTION = "INVALID_SCREENING_TYPE_FOR_QUESTION"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    REGEX_MISMATCH = "REGEX_MISMATCH"
    INVALID_REFERENCE_TYPE = "INVALID_REFERENCE_TYPE"
    INVALID_REFERENCE_FORMAT = "INVALID_REFERENCE_FORMAT"
    REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
    ID_FULLURL_MISMATCH = "ID_FULLURL_MISMATCH"


class LogLevel(str, Enum):
    """Verbosity of the per-call log trail (lower rank = less output)"""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    VERBOSE = "verbose"

    @property
    def rank(self) -> int:
        return _LOG_LEVEL_RANK[self]


_LOG_LEVEL_RANK = {
    LogLevel.ERROR: 1,
    LogLevel.WARN: 2,
    LogLevel.INFO: 3,
    LogLevel.DEBUG: 4,
    LogLevel.VERBOSE: 5,
}


class ScreeningType(str, Enum):
    """Screening observation discriminator codes"""
    HEARING = "HS"
    ORAL = "OS"
    VISION = "VS"


class EngineState(str, Enum):
    """Validation engine lifecycle"""
    IDLE = "Idle"
    METADATA_LOADED = "MetadataLoaded"
    RUNNING = "Running"
    COMPLETED = "Completed"


# Path language
SUPPORTED_PATH_SYNTAX = "CPS1"
QUESTION_CODE_ALIAS = "QuestionCode"
QUESTION_CODE_PATH = "code.coding[0].code"
RESOURCE_TYPE_FILTER_KEY = "resource.resourceType"

# Document shape
BUNDLE_RESOURCE_TYPE = "Bundle"
OBSERVATION_RESOURCE_TYPE = "Observation"
ORGANIZATION_RESOURCE_TYPE = "Organization"
MULTI_VALUE_DELIMITER = "|"
URN_UUID_PREFIX = "urn:uuid:"

# Organization type codes used for provider / cluster assignment
PROVIDER_TYPE_CODES = ("prov", "provider")
CLUSTER_TYPE_CODES = ("cluster",)

# Extension / identifier URL fragments matched by substring
GRC_EXTENSION_KEY = "grc"
CONSTITUENCY_EXTENSION_KEY = "constituency"
EVENT_ID_SYSTEM_KEY = "event-id"
NRIC_SYSTEM_KEY = "nric"
RESIDENTIAL_STATUS_EXTENSION_KEY = "residential-status"
ETHNICITY_EXTENSION_KEY = "ethnicity"
SUBSIDY_EXTENSION_KEY = "subsidy"
CONSENT_EXTENSION_KEY = "consent-for-sharing"

# Default rule error code when a Regex rule does not name one
DEFAULT_REGEX_ERROR_CODE = ValidationErrorCode.REGEX_MISMATCH.value

"""
Data Models Module

Pydantic models for type safety and validation.

Components:
- metadata.py: Rule metadata (rule sets, rule kinds, codes master)
- validation_result.py: Structured validation errors and results
- flatten_result.py: Flattened event/participant/screening records
"""

from .metadata import (
    RuleDefinition,
    RuleSet,
    ScopeDefinition,
    MatchCondition,
    CodesMaster,
    CodesMasterQuestion,
    CodesMasterCodeSystem,
    CodesMasterConcept,
    ValidationMetadata,
)
from .validation_result import (
    RuleEcho,
    ConceptInfo,
    ErrorContext,
    ResourcePointer,
    PathAnalysis,
    ValidationError,
    ValidationSummary,
    ValidationResult,
)
from .flatten_result import (
    EventData,
    ParticipantData,
    CodeDisplay,
    ObservationItem,
    ScreeningSet,
    FlattenResult,
    ProcessResult,
)

__all__ = [
    "RuleDefinition",
    "RuleSet",
    "ScopeDefinition",
    "MatchCondition",
    "CodesMaster",
    "CodesMasterQuestion",
    "CodesMasterCodeSystem",
    "CodesMasterConcept",
    "ValidationMetadata",
    "RuleEcho",
    "ConceptInfo",
    "ErrorContext",
    "ResourcePointer",
    "PathAnalysis",
    "ValidationError",
    "ValidationSummary",
    "ValidationResult",
    "EventData",
    "ParticipantData",
    "CodeDisplay",
    "ObservationItem",
    "ScreeningSet",
    "FlattenResult",
    "ProcessResult",
]

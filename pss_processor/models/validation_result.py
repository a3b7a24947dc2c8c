"""
Validation Result Data Models

Defines the structured errors produced by the validation engine and the
overall result returned to the caller. Every error carries enough
context (rule echo, resource pointer, path analysis, domain hints) for a
UI to explain what failed and where.
"""

from typing import Dict, List, Optional

from pydantic import ConfigDict, Field, computed_field

from .base import CamelModel


class RuleEcho(CamelModel):
    """Fields of the offending rule, echoed for display"""

    path: Optional[str] = None
    expected_value: Optional[str] = None
    expected_system: Optional[str] = None
    expected_code: Optional[str] = None
    expected_type: Optional[str] = None
    pattern: Optional[str] = None
    target_types: Optional[List[str]] = None
    allowed_values: Optional[List[str]] = None
    system: Optional[str] = None
    error_code: Optional[str] = None


class ConceptInfo(CamelModel):
    code: str
    display: Optional[str] = None


class ErrorContext(CamelModel):
    """Domain hints attached to an error"""

    resource_type: Optional[str] = None
    screening_type: Optional[str] = None
    question_code: Optional[str] = None
    question_display: Optional[str] = None
    allowed_answers: Optional[List[str]] = None
    code_system_concepts: Optional[List[ConceptInfo]] = None


class ResourcePointer(CamelModel):
    """Which bundle entry an error belongs to"""

    entry_index: Optional[int] = None
    full_url: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None


class PathAnalysis(CamelModel):
    """How far a rule path resolved before failing"""

    parent_path_exists: bool = Field(..., description="All but the last segment resolved")
    path_mismatch_segment: Optional[str] = Field(None, description="First segment that failed")
    mismatch_depth: int = Field(..., ge=0, description="Index of the first failing segment")


class ValidationError(CamelModel):
    """A single rule violation or document-level input error"""

    code: str = Field(..., description="Error code, e.g. MANDATORY_MISSING")
    field_path: str = Field("", description="Path of the failing node, filters resolved to indices")
    message: str = Field(..., description="Human-readable message")
    scope: Optional[str] = Field(None, description="Rule set scope")
    rule_type: Optional[str] = Field(None, description="Rule kind that produced the error")

    rule: Optional[RuleEcho] = None
    context: Optional[ErrorContext] = None
    resource_pointer: Optional[ResourcePointer] = None
    path_analysis: Optional[PathAnalysis] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "INVALID_ANSWER_VALUE",
                "fieldPath": "entry[4].resource.component[0].valueString",
                "message": "Answer 'Maybe' is not allowed for question SQ-L2H9-00000001",
                "scope": "HS",
                "ruleType": "CodesMaster",
                "context": {
                    "resourceType": "Observation",
                    "screeningType": "HS",
                    "questionCode": "SQ-L2H9-00000001",
                    "allowedAnswers": [
                        "Yes (Proceed to next question)",
                        "No (To continue with hearing screening)"
                    ]
                },
                "resourcePointer": {"entryIndex": 4, "resourceType": "Observation"}
            }
        }
    )


class ValidationSummary(CamelModel):
    """Counts for reporting"""

    total_errors: int = 0
    scopes_evaluated: int = 0
    rules_evaluated: int = 0
    errors_by_scope: Dict[str, int] = Field(default_factory=dict)
    errors_by_code: Dict[str, int] = Field(default_factory=dict)


class ValidationResult(CamelModel):
    """Outcome of validating one document"""

    errors: List[ValidationError] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)

    @computed_field(alias="isValid")
    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @classmethod
    def from_errors(
        cls,
        errors: List[ValidationError],
        scopes_evaluated: int = 0,
        rules_evaluated: int = 0
    ) -> "ValidationResult":
        """Build a result and its summary counts from a list of errors."""
        by_scope: Dict[str, int] = {}
        by_code: Dict[str, int] = {}
        for error in errors:
            scope = error.scope or "(document)"
            by_scope[scope] = by_scope.get(scope, 0) + 1
            by_code[error.code] = by_code.get(error.code, 0) + 1

        summary = ValidationSummary(
            total_errors=len(errors),
            scopes_evaluated=scopes_evaluated,
            rules_evaluated=rules_evaluated,
            errors_by_scope=by_scope,
            errors_by_code=by_code
        )
        return cls(errors=list(errors), summary=summary)

    def error_codes(self) -> List[str]:
        return [e.code for e in self.errors]

    def errors_for_scope(self, scope: str) -> List[ValidationError]:
        return [e for e in self.errors if e.scope == scope]

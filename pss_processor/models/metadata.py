"""
Validation Metadata Data Models

Defines the rule metadata document: rule sets grouped by scope, the
ten rule kinds as a tagged union on ruleType, and the codes master
(question codes with allowed answers, plus code-system concept tables).

Each rule kind declares exactly the fields it needs, so a rule with an
unknown ruleType or a missing required field fails when the metadata is
loaded rather than when a document is validated.
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, PrivateAttr, field_validator

from ..config.constants import ExpectedType, RuleType, SUPPORTED_PATH_SYNTAX
from ..utils.json_utils import node_to_string
from .base import CamelModel


def _as_string(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return node_to_string(value)


# ============================================================================
# RULE DEFINITIONS
# ============================================================================

class _RuleBase(CamelModel):
    """Fields shared by every rule kind"""

    path: str = Field(..., min_length=1, description="CPS path relative to the scope resource")
    error_code: Optional[str] = Field(None, description="Author-supplied error code")
    message: Optional[str] = Field(None, description="Author-supplied error message")

    @property
    def kind(self) -> RuleType:
        return RuleType(self.rule_type)


class RequiredRule(_RuleBase):
    """Path must resolve to at least one non-empty node"""
    rule_type: Literal["Required"]


class FixedValueRule(_RuleBase):
    """Resolved value must equal expectedValue"""
    rule_type: Literal["FixedValue"]
    expected_value: str = Field(..., description="Value compared as a string")

    @field_validator("expected_value", mode="before")
    @classmethod
    def _coerce_expected(cls, value):
        return _as_string(value)


class FixedCodingRule(_RuleBase):
    """Coding list must contain system + code"""
    rule_type: Literal["FixedCoding"]
    expected_system: str
    expected_code: str


class AllowedValuesRule(_RuleBase):
    """Every resolved value must be one of allowedValues"""
    rule_type: Literal["AllowedValues"]
    allowed_values: List[str] = Field(..., min_length=1)

    @field_validator("allowed_values", mode="before")
    @classmethod
    def _coerce_values(cls, value):
        if isinstance(value, list):
            return [_as_string(v) for v in value]
        return value


class CodesMasterRule(_RuleBase):
    """Question components checked against the codes master"""
    rule_type: Literal["CodesMaster"]


class TypeRule(_RuleBase):
    """Resolved value must parse as expectedType"""
    rule_type: Literal["Type"]
    expected_type: ExpectedType

    @field_validator("expected_type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class RegexRule(_RuleBase):
    """Resolved string must fully match pattern"""
    rule_type: Literal["Regex"]
    pattern: str

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{value}': {e}")
        return value


class ReferenceRule(_RuleBase):
    """Referenced resource type must be one of targetTypes"""
    rule_type: Literal["Reference"]
    target_types: List[str] = Field(..., min_length=1)


class CodeSystemRule(_RuleBase):
    """Resolved code must be a concept of the named code system"""
    rule_type: Literal["CodeSystem"]
    system: str = Field(..., min_length=1, description="Code system URL or id")


class FullUrlIdMatchRule(_RuleBase):
    """Resource id must equal the GUID in the entry fullUrl"""
    rule_type: Literal["FullUrlIdMatch"]
    path: str = Field("id", description="Path of the id inside the resource")


RuleDefinition = Annotated[
    Union[
        RequiredRule,
        FixedValueRule,
        FixedCodingRule,
        AllowedValuesRule,
        CodesMasterRule,
        TypeRule,
        RegexRule,
        ReferenceRule,
        CodeSystemRule,
        FullUrlIdMatchRule,
    ],
    Field(discriminator="rule_type"),
]


# ============================================================================
# RULE SETS / SCOPES
# ============================================================================

class MatchCondition(CamelModel):
    """Resource is in scope when path resolves to expected"""

    path: str
    expected: str

    @field_validator("expected", mode="before")
    @classmethod
    def _coerce_expected(cls, value):
        return _as_string(value)


class ScopeDefinition(CamelModel):
    """How to locate the resources a rule set applies to"""

    resource_type: str
    match: List[MatchCondition] = Field(default_factory=list)


class RuleSet(CamelModel):
    """Named bucket of rules evaluated against one kind of resource"""

    scope: str = Field(..., min_length=1, description="Scope name, e.g. Patient or HS")
    resource_type: Optional[str] = Field(
        None,
        description="Resource type, optionally with a discriminator (Observation:HS)"
    )
    scope_definition: Optional[ScopeDefinition] = None
    rules: List[RuleDefinition] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "scope": "Patient",
                "resourceType": "Patient",
                "rules": [
                    {"ruleType": "Required", "path": "Patient.name[0].text",
                     "errorCode": "MANDATORY_MISSING", "message": "Participant name is required"}
                ]
            }
        }
    )


# ============================================================================
# CODES MASTER
# ============================================================================

class CodesMasterQuestion(CamelModel):
    """Permitted question with its display and allowed answers"""

    question_code: str
    question_display: str = ""
    screening_type: Optional[str] = None
    allowed_answers: List[str] = Field(default_factory=list)
    is_multi_value: bool = False


class CodesMasterConcept(CamelModel):
    code: str
    display: Optional[str] = None


class CodesMasterCodeSystem(CamelModel):
    id: Optional[str] = None
    system: str
    description: Optional[str] = None
    concepts: List[CodesMasterConcept] = Field(default_factory=list)

    def has_code(self, code: str) -> bool:
        return any(c.code == code for c in self.concepts)


class CodesMaster(CamelModel):
    """Reference tables of question codes and code-system concepts"""

    questions: List[CodesMasterQuestion] = Field(default_factory=list)
    code_systems: List[CodesMasterCodeSystem] = Field(default_factory=list)

    _question_index: Dict[str, CodesMasterQuestion] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        # First definition of a code wins
        index = {}
        for question in self.questions:
            index.setdefault(question.question_code, question)
        self._question_index = index

    def find_question(self, code: Optional[str]) -> Optional[CodesMasterQuestion]:
        if not code:
            return None
        return self._question_index.get(code)

    def find_code_system(self, system_or_id: Optional[str]) -> Optional[CodesMasterCodeSystem]:
        """Look up a code system by its URL, falling back to its id."""
        if not system_or_id:
            return None
        for code_system in self.code_systems:
            if code_system.system == system_or_id:
                return code_system
        for code_system in self.code_systems:
            if code_system.id and code_system.id == system_or_id:
                return code_system
        return None


# ============================================================================
# ROOT
# ============================================================================

class ValidationMetadata(CamelModel):
    """Versioned rule metadata document"""

    version: Optional[str] = None
    path_syntax: str = SUPPORTED_PATH_SYNTAX
    rule_sets: List[RuleSet] = Field(default_factory=list)
    codes_master: Optional[CodesMaster] = None

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value):
        return _as_string(value)

    @field_validator("path_syntax")
    @classmethod
    def _supported_syntax(cls, value: str) -> str:
        if value != SUPPORTED_PATH_SYNTAX:
            raise ValueError(
                f"Unsupported pathSyntax '{value}', expected '{SUPPORTED_PATH_SYNTAX}'"
            )
        return value

    def get_rule_set(self, scope: str) -> Optional[RuleSet]:
        for rule_set in self.rule_sets:
            if rule_set.scope == scope:
                return rule_set
        return None

    def get_scopes(self) -> List[str]:
        return [rule_set.scope for rule_set in self.rule_sets]

    def rule_count(self) -> int:
        return sum(len(rule_set.rules) for rule_set in self.rule_sets)

"""
Validation Error Enricher

Adds the debugging context a caller needs to every raw rule error:
scope and rule kind, an echo of the rule, a pointer to the bundle entry,
domain hints (resource type, screening type, code-system concepts), a
field path with key/value filters resolved to indices, and a path
analysis when the rule path did not fully resolve.
"""

from typing import Optional

from ..config.constants import RuleType, ValidationErrorCode
from ..models.metadata import CodesMaster
from ..models.validation_result import (
    ConceptInfo,
    ErrorContext,
    PathAnalysis,
    ResourcePointer,
    RuleEcho,
    ValidationError,
)
from ..path.parser import parse_path
from ..path.resolver import analyze_path, resolve_filters_to_indices
from .scope_matcher import ScopeMatcher, ScopeTarget


def build_rule_echo(rule) -> RuleEcho:
    """Copy the rule fields a UI shows next to an error."""
    data = rule.model_dump(mode="json", exclude_none=True)
    return RuleEcho(**{k: v for k, v in data.items() if k in RuleEcho.model_fields})


class ValidationErrorEnricher:
    """Fills in scope, rule, pointer, context and path analysis"""

    def __init__(self, codes_master: Optional[CodesMaster] = None):
        self.codes_master = codes_master

    def _base_context(self, matcher: ScopeMatcher, existing: Optional[ErrorContext]) -> ErrorContext:
        context = existing.model_copy() if existing else ErrorContext()
        if context.resource_type is None:
            context.resource_type = matcher.resource_type
        if context.screening_type is None:
            context.screening_type = matcher.screening_type
        return context

    def enrich(
        self,
        error: ValidationError,
        rule,
        rule_path: str,
        scope: str,
        matcher: ScopeMatcher,
        target: ScopeTarget
    ) -> ValidationError:
        """
        Return a copy of error with all context attached.

        Args:
            error: Raw error from the rule evaluator
            rule: Rule that produced it
            rule_path: Rule path relative to the resource
            scope: Rule set scope
            matcher: Scope matcher that selected the resource
            target: The resource the rule ran against

        Returns:
            Enriched ValidationError
        """
        context = self._base_context(matcher, error.context)

        if rule.rule_type == RuleType.CODE_SYSTEM and not context.code_system_concepts and self.codes_master:
            code_system = self.codes_master.find_code_system(rule.system)
            if code_system is not None:
                context.code_system_concepts = [
                    ConceptInfo(code=c.code, display=c.display) for c in code_system.concepts
                ]

        field_path = resolve_filters_to_indices(target.resource, error.field_path) if error.field_path else ""

        path_analysis = error.path_analysis
        if path_analysis is None and rule_path:
            path_analysis = analyze_path(target.resource, rule_path)

        return error.model_copy(update={
            "scope": scope,
            "rule_type": rule.rule_type,
            "rule": build_rule_echo(rule),
            "context": context,
            "resource_pointer": target.pointer(),
            "field_path": field_path,
            "path_analysis": path_analysis,
        })

    def missing_resource(
        self,
        rule,
        rule_path: str,
        scope: str,
        matcher: ScopeMatcher
    ) -> ValidationError:
        """
        Error for a scope whose resource is absent from the bundle.

        Attributed to the given Required rule's path; nothing below the
        resource exists, so the mismatch is at depth 0.
        """
        segments = parse_path(rule_path)
        first_segment = segments[0].name if segments else None

        return ValidationError(
            code=ValidationErrorCode.MANDATORY_MISSING.value,
            field_path=rule_path,
            message=f"Required resource {matcher.describe()} is missing for scope '{scope}'",
            scope=scope,
            rule_type=rule.rule_type,
            rule=build_rule_echo(rule),
            context=self._base_context(matcher, None),
            resource_pointer=ResourcePointer(resource_type=matcher.resource_type),
            path_analysis=PathAnalysis(
                parent_path_exists=False,
                path_mismatch_segment=first_segment,
                mismatch_depth=0
            )
        )

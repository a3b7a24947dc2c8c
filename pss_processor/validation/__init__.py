"""
Validation Module

Metadata-driven validation of screening bundles.

Components:
- rule_loader.py: Loads rule metadata (JSON/YAML) with content-hash cache
- scope_matcher.py: Locates the resources each rule set applies to
- type_checker.py: Value type checks for Type rules
- rule_evaluator.py: Per-kind rule checks
- error_enricher.py: Pointer/context/path analysis for each error
- validation_engine.py: Orchestrates the validation run
"""

from .rule_loader import RuleLoader, MetadataCache, normalize_keys
from .scope_matcher import (
    ScopeMatcher,
    ScopeTarget,
    FixedResourceScope,
    DiscriminatorScope,
    MatchConditionScope,
    build_scope_matcher,
)
from .type_checker import check_type
from .rule_evaluator import RuleEvaluator, EvaluationContext, get_rule_evaluator
from .error_enricher import ValidationErrorEnricher
from .validation_engine import ValidationEngine, get_validation_engine

__all__ = [
    "RuleLoader",
    "MetadataCache",
    "normalize_keys",
    "ScopeMatcher",
    "ScopeTarget",
    "FixedResourceScope",
    "DiscriminatorScope",
    "MatchConditionScope",
    "build_scope_matcher",
    "check_type",
    "RuleEvaluator",
    "EvaluationContext",
    "get_rule_evaluator",
    "ValidationErrorEnricher",
    "ValidationEngine",
    "get_validation_engine",
]

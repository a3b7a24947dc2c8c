"""
Validation Engine

Core orchestrator for bundle validation.
Coordinates metadata loading, scope matching, rule evaluation and error
enrichment, and renders text reports of the results.
"""

import time
from typing import Any, Dict, List, Optional, Union

from ..config.constants import (
    BUNDLE_RESOURCE_TYPE,
    EngineState,
    RuleType,
    ValidationErrorCode,
)
from ..config.settings import ProcessorSettings, ValidationOptions, get_settings
from ..models.metadata import ValidationMetadata
from ..models.validation_result import ValidationError, ValidationResult
from ..path.parser import strip_resource_prefix
from ..utils.error_handler import DocumentParseError, EngineStateError
from ..utils.json_utils import parse_document
from ..utils.logger import ProcessingLogger, get_logger
from .error_enricher import ValidationErrorEnricher
from .rule_evaluator import EvaluationContext, RuleEvaluator, get_rule_evaluator
from .rule_loader import RuleLoader
from .scope_matcher import build_scope_matcher


def document_error(code: ValidationErrorCode, message: str) -> ValidationResult:
    """Result holding a single document-level input error."""
    return ValidationResult.from_errors([
        ValidationError(code=code.value, field_path="", message=message)
    ])


class ValidationEngine:
    """
    Metadata-driven validation engine for screening bundles.

    Lifecycle: Idle -> MetadataLoaded -> Running -> Completed.
    load_metadata may be called from any state except Running; validate
    needs metadata to have been loaded. A completed engine keeps its
    metadata and can validate further documents.

    Orchestrates the validation workflow:
    1. Parse the document and check it is a non-empty Bundle
    2. For each rule set, locate the in-scope resources
    3. Evaluate every rule against every in-scope resource
    4. Enrich each error with pointer, context and path analysis
    """

    def __init__(
        self,
        rule_loader: Optional[RuleLoader] = None,
        rule_evaluator: Optional[RuleEvaluator] = None,
        settings: Optional[ProcessorSettings] = None
    ):
        """
        Initialize the ValidationEngine.

        Args:
            rule_loader: RuleLoader instance (a new one if None)
            rule_evaluator: RuleEvaluator instance (uses singleton if None)
            settings: Processor settings (uses global settings if None)
        """
        self.settings = settings or get_settings()
        self.rule_loader = rule_loader or RuleLoader(self.settings)
        self.rule_evaluator = rule_evaluator or get_rule_evaluator()
        self.state = EngineState.IDLE
        self.metadata: Optional[ValidationMetadata] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load_metadata(self, metadata_json: Union[str, bytes]) -> ValidationMetadata:
        """
        Parse and install rule metadata.

        Args:
            metadata_json: Metadata JSON text

        Returns:
            The loaded ValidationMetadata

        Raises:
            MetadataParseError: If the metadata is malformed
            EngineStateError: If a validation is running
        """
        return self.use_metadata(self.rule_loader.load_from_text(metadata_json))

    def use_metadata(self, metadata: ValidationMetadata) -> ValidationMetadata:
        """Install already parsed metadata."""
        if self.state == EngineState.RUNNING:
            raise EngineStateError("Cannot load metadata while a validation is running")
        self.metadata = metadata
        self.state = EngineState.METADATA_LOADED
        return metadata

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(
        self,
        document: Union[str, bytes, Dict[str, Any]],
        options: Optional[ValidationOptions] = None,
        logger: Optional[ProcessingLogger] = None
    ) -> ValidationResult:
        """
        Validate a bundle against the loaded metadata.

        Args:
            document: Bundle JSON text or an already parsed bundle
            options: Per-call options (settings defaults if None)
            logger: Logger receiving the call's trail

        Returns:
            ValidationResult; malformed input yields a single
            INVALID_JSON, INVALID_RESOURCE_TYPE or EMPTY_BUNDLE error

        Raises:
            EngineStateError: If no metadata has been loaded
        """
        if self.metadata is None or self.state not in (EngineState.METADATA_LOADED, EngineState.COMPLETED):
            raise EngineStateError(
                f"validate() requires loaded metadata (engine state: {self.state.value})"
            )

        options = options or self.settings.default_options()
        logger = logger or get_logger(__name__)

        self.state = EngineState.RUNNING
        try:
            return self._run(document, options, logger)
        finally:
            self.state = EngineState.COMPLETED

    def _run(self, document, options: ValidationOptions, logger: ProcessingLogger) -> ValidationResult:
        start_time = time.time()

        try:
            bundle = parse_document(document)
        except DocumentParseError as e:
            logger.error("Document is not valid JSON", reason=e.details.get("original_error"))
            return document_error(ValidationErrorCode.INVALID_JSON, e.message)

        if not isinstance(bundle, dict) or bundle.get("resourceType") != BUNDLE_RESOURCE_TYPE:
            found = bundle.get("resourceType") if isinstance(bundle, dict) else type(bundle).__name__
            logger.error("Document is not a Bundle", found=found)
            return document_error(
                ValidationErrorCode.INVALID_RESOURCE_TYPE,
                f"Expected resourceType 'Bundle', found '{found}'"
            )

        entries = bundle.get("entry")
        if not isinstance(entries, list) or not entries:
            logger.error("Bundle has no entries")
            return document_error(ValidationErrorCode.EMPTY_BUNDLE, "Bundle contains no entries")

        metadata = self.metadata
        ctx = EvaluationContext(
            bundle=bundle,
            codes_master=metadata.codes_master,
            options=options,
            regex_error_code=self.settings.regex_error_code,
            logger=logger
        )
        enricher = ValidationErrorEnricher(metadata.codes_master)

        errors: List[ValidationError] = []
        rules_evaluated = 0

        for rule_set in metadata.rule_sets:
            matcher = build_scope_matcher(rule_set)
            targets = matcher.find_targets(bundle)
            ctx.screening_type = matcher.screening_type
            logger.debug(
                "Scope matched",
                scope=rule_set.scope,
                matcher=matcher.describe(),
                targets=len(targets)
            )

            if not targets:
                first_required = next(
                    (r for r in rule_set.rules if r.rule_type == RuleType.REQUIRED), None
                )
                if first_required is not None:
                    rule_path = strip_resource_prefix(first_required.path, matcher.resource_type)
                    errors.append(enricher.missing_resource(first_required, rule_path, rule_set.scope, matcher))
                    logger.warn("Scope resource missing", scope=rule_set.scope, matcher=matcher.describe())
                else:
                    logger.verbose("Scope skipped, no resource", scope=rule_set.scope)
                continue

            for target in targets:
                for rule in rule_set.rules:
                    rule_path = strip_resource_prefix(rule.path, matcher.resource_type)
                    raw_errors = self.rule_evaluator.evaluate(rule, rule_path, target, ctx)
                    rules_evaluated += 1
                    logger.log_rule(rule_set.scope, rule.rule_type, rule_path, len(raw_errors))
                    for raw in raw_errors:
                        errors.append(
                            enricher.enrich(raw, rule, rule_path, rule_set.scope, matcher, target)
                        )

        result = ValidationResult.from_errors(
            errors,
            scopes_evaluated=len(metadata.rule_sets),
            rules_evaluated=rules_evaluated
        )
        logger.info(
            "Validation completed",
            is_valid=result.is_valid,
            errors=len(errors),
            rules_evaluated=rules_evaluated
        )
        logger.log_performance("validate", time.time() - start_time)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def generate_validation_report(
        self,
        validation_result: ValidationResult,
        include_context: bool = True,
        group_by_scope: bool = True
    ) -> str:
        """
        Generate human-readable validation report.

        Args:
            validation_result: Result to render
            include_context: Whether to show rule echo, pointer and hints
            group_by_scope: Whether to group errors by scope

        Returns:
            Formatted validation report as string
        """
        report_lines = []

        # Header
        report_lines.append("=" * 80)
        report_lines.append("SCREENING BUNDLE VALIDATION REPORT")
        report_lines.append("=" * 80)
        if self.metadata is not None and self.metadata.version:
            report_lines.append(f"Metadata Version: {self.metadata.version}")
        report_lines.append(f"Status: {'VALID' if validation_result.is_valid else 'INVALID'}")
        report_lines.append("")

        # Summary
        summary = validation_result.summary
        report_lines.append("-" * 80)
        report_lines.append("SUMMARY")
        report_lines.append("-" * 80)
        report_lines.append(f"Scopes Evaluated: {summary.scopes_evaluated}")
        report_lines.append(f"Rules Evaluated: {summary.rules_evaluated}")
        report_lines.append(f"Total Errors: {summary.total_errors}")
        for code, count in sorted(summary.errors_by_code.items()):
            report_lines.append(f"  • {code}: {count}")
        report_lines.append("")

        if validation_result.errors:
            report_lines.append("-" * 80)
            report_lines.append("ERROR DETAILS")
            report_lines.append("-" * 80)

            if group_by_scope:
                scopes: Dict[str, List[ValidationError]] = {}
                for error in validation_result.errors:
                    scopes.setdefault(error.scope or "(document)", []).append(error)

                for scope, scope_errors in scopes.items():
                    report_lines.append(f"\n{scope.upper()}")
                    report_lines.append("-" * 40)
                    for error in scope_errors:
                        report_lines.extend(self._format_error(error, include_context))
            else:
                for error in validation_result.errors:
                    report_lines.extend(self._format_error(error, include_context))

        report_lines.append("")
        report_lines.append("=" * 80)
        report_lines.append("END OF REPORT")
        report_lines.append("=" * 80)

        return "\n".join(report_lines)

    def _format_error(self, error: ValidationError, include_context: bool) -> List[str]:
        """
        Format a single error for report.

        Args:
            error: Validation error
            include_context: Whether to add pointer, rule and hints

        Returns:
            List of formatted lines
        """
        lines = [f"\n  ✗ [{error.code}] {error.message}"]

        if error.field_path:
            lines.append(f"      Field: {error.field_path}")
        if error.rule_type:
            lines.append(f"      Rule: {error.rule_type}")

        if not include_context:
            return lines

        pointer = error.resource_pointer
        if pointer is not None:
            location = f"{pointer.resource_type or '?'}"
            if pointer.entry_index is not None:
                location = f"entry[{pointer.entry_index}] {location}"
            if pointer.resource_id:
                location += f"/{pointer.resource_id}"
            lines.append(f"      Resource: {location}")

        analysis = error.path_analysis
        if analysis is not None:
            lines.append(
                f"      Path stops at '{analysis.path_mismatch_segment}' "
                f"(depth {analysis.mismatch_depth}, parent exists: {analysis.parent_path_exists})"
            )

        context = error.context
        if context is not None:
            if context.question_code:
                lines.append(f"      Question: {context.question_code} {context.question_display or ''}".rstrip())
            if context.allowed_answers:
                lines.append("      Allowed:")
                for answer in context.allowed_answers:
                    lines.append(f"        • {answer}")
            if context.code_system_concepts:
                codes = ", ".join(c.code for c in context.code_system_concepts)
                lines.append(f"      Concepts: {codes}")

        return lines


# Singleton instance for global access
_validation_engine_instance = None


def get_validation_engine() -> ValidationEngine:
    """
    Get singleton instance of ValidationEngine.

    Returns:
        ValidationEngine instance
    """
    global _validation_engine_instance
    if _validation_engine_instance is None:
        _validation_engine_instance = ValidationEngine()
    return _validation_engine_instance

"""
Rule Evaluator

Evaluates one rule against one in-scope resource and returns the
violations as ValidationError objects. Evaluation never raises for bad
data: every problem becomes an error, and evaluating one rule never
stops the next.

Error codes are assigned here per rule kind. The author's errorCode is
used only by Regex rules (falling back to the configured default); for
every other kind it is echoed back in the error's rule field.
"""

import re
from typing import Any, Callable, Dict, List, Optional

from ..config.constants import (
    QUESTION_CODE_PATH,
    URN_UUID_PREFIX,
    ExpectedType,
    RuleType,
    ValidationErrorCode,
)
from ..config.settings import ValidationOptions
from ..models.metadata import CodesMaster
from ..models.validation_result import ConceptInfo, ErrorContext, ValidationError
from ..path.parser import format_segment, parse_path
from ..path.resolver import all_values_as_strings, first_value_as_string, resolve
from ..utils.json_utils import is_empty_node, node_to_string, split_multi_value
from ..utils.logger import ProcessingLogger, get_logger
from .scope_matcher import ScopeTarget, iter_entries
from .type_checker import check_type


QUESTION_DISPLAY_PATH = "code.coding[0].display"
ANSWER_PATH = "valueString"

# Patient/123, https://host/fhir/Patient/123, Patient/123/_history/2
_RELATIVE_REFERENCE = re.compile(
    r'(?:^|/)([A-Z][A-Za-z]+)/([A-Za-z0-9\-\.]{1,64})(?:/_history/[A-Za-z0-9\-\.]{1,64})?$'
)


def normalize_display(text: Optional[str]) -> str:
    """Lower-case and collapse whitespace for display comparison."""
    if not text:
        return ""
    return " ".join(text.split()).lower()


class EvaluationContext:
    """Per-call state shared by all rule evaluations"""

    def __init__(
        self,
        bundle: Dict[str, Any],
        codes_master: Optional[CodesMaster],
        options: ValidationOptions,
        regex_error_code: Optional[str],
        logger: Optional[ProcessingLogger] = None
    ):
        self.bundle = bundle
        self.codes_master = codes_master
        self.options = options
        self.regex_error_code = regex_error_code or ValidationErrorCode.REGEX_MISMATCH.value
        self.logger = logger or get_logger(__name__)
        # Set by the engine for each scope
        self.screening_type: Optional[str] = None
        self._full_url_index: Optional[Dict[str, Dict[str, Any]]] = None

    def find_by_full_url(self, full_url: str) -> Optional[Dict[str, Any]]:
        """Resource whose entry fullUrl equals full_url (case-insensitive)."""
        if self._full_url_index is None:
            self._full_url_index = {
                url.lower(): resource
                for _, url, resource in iter_entries(self.bundle)
                if url
            }
        return self._full_url_index.get(full_url.lower())


class RuleEvaluator:
    """
    Dispatches each rule kind to its check.

    Every check has the signature (rule, path, target, ctx) where path
    is the rule path with any "<ResourceType>." prefix removed.
    """

    def __init__(self):
        self.registry: Dict[str, Callable[..., List[ValidationError]]] = self._build_registry()

    def _build_registry(self) -> Dict[str, Callable[..., List[ValidationError]]]:
        return {
            RuleType.REQUIRED.value: self._check_required,
            RuleType.FIXED_VALUE.value: self._check_fixed_value,
            RuleType.FIXED_CODING.value: self._check_fixed_coding,
            RuleType.ALLOWED_VALUES.value: self._check_allowed_values,
            RuleType.CODES_MASTER.value: self._check_codes_master,
            RuleType.TYPE.value: self._check_type,
            RuleType.REGEX.value: self._check_regex,
            RuleType.REFERENCE.value: self._check_reference,
            RuleType.CODE_SYSTEM.value: self._check_code_system,
            RuleType.FULL_URL_ID_MATCH.value: self._check_full_url_id_match,
        }

    def evaluate(self, rule, path: str, target: ScopeTarget, ctx: EvaluationContext) -> List[ValidationError]:
        """
        Evaluate one rule against one resource.

        Args:
            rule: Rule definition
            path: Rule path relative to the resource
            target: In-scope resource
            ctx: Evaluation context

        Returns:
            Errors found (empty when the rule passes)
        """
        check = self.registry[rule.rule_type]
        return check(rule, path, target, ctx)

    # ------------------------------------------------------------------

    @staticmethod
    def _error(
        code: str,
        field_path: str,
        message: str,
        context: Optional[ErrorContext] = None
    ) -> ValidationError:
        return ValidationError(code=code, field_path=field_path, message=message, context=context)

    @staticmethod
    def _values(resource: Dict[str, Any], path: str) -> List[Any]:
        """Resolved nodes with null and blank values dropped; lists expanded."""
        values = []
        for node in resolve(resource, path):
            items = node if isinstance(node, list) else [node]
            values.extend(item for item in items if not is_empty_node(item))
        return values

    # ------------------------------------------------------------------
    # Required / FixedValue / FixedCoding / AllowedValues
    # ------------------------------------------------------------------

    def _check_required(self, rule, path, target, ctx):
        nodes = resolve(target.resource, path)
        if any(not is_empty_node(node) for node in nodes):
            return []
        return [self._error(
            ValidationErrorCode.MANDATORY_MISSING.value,
            path,
            rule.message or f"Mandatory field '{path}' is missing"
        )]

    def _check_fixed_value(self, rule, path, target, ctx):
        values = all_values_as_strings(target.resource, path)
        if rule.expected_value in values:
            return []
        if values:
            detail = f"found '{values[0]}'"
        else:
            detail = "value is missing"
        return [self._error(
            ValidationErrorCode.FIXED_VALUE_MISMATCH.value,
            path,
            rule.message or f"Expected '{rule.expected_value}' at '{path}', {detail}"
        )]

    def _check_fixed_coding(self, rule, path, target, ctx):
        codings = []
        for node in resolve(target.resource, path):
            items = node if isinstance(node, list) else [node]
            for item in items:
                if isinstance(item, dict) and isinstance(item.get("coding"), list):
                    codings.extend(item["coding"])
                else:
                    codings.append(item)

        for coding in codings:
            if (
                isinstance(coding, dict)
                and node_to_string(coding.get("system")) == rule.expected_system
                and node_to_string(coding.get("code")) == rule.expected_code
            ):
                return []

        return [self._error(
            ValidationErrorCode.FIXED_CODING_MISMATCH.value,
            path,
            rule.message or (
                f"Expected coding {rule.expected_system}|{rule.expected_code} at '{path}'"
            )
        )]

    def _check_allowed_values(self, rule, path, target, ctx):
        errors = []
        for value in all_values_as_strings(target.resource, path):
            if value in rule.allowed_values:
                continue
            errors.append(self._error(
                ValidationErrorCode.INVALID_CODE.value,
                path,
                rule.message or f"Value '{value}' at '{path}' is not an allowed value",
                ErrorContext(allowed_answers=list(rule.allowed_values))
            ))
        return errors

    # ------------------------------------------------------------------
    # CodesMaster
    # ------------------------------------------------------------------

    @staticmethod
    def _component_paths(resource: Dict[str, Any], path: str, components: List[Any]) -> List[str]:
        """Concrete index path of each resolved component (identity match)."""
        segments = parse_path(path)
        if not segments:
            return [path for _ in components]

        prefix = [format_segment(s) for s in segments[:-1]]
        container_path = ".".join(prefix + [segments[-1].name])
        containers = [c for c in resolve(resource, container_path) if isinstance(c, list)]

        paths = []
        for component in components:
            located = None
            for container in containers:
                for i, candidate in enumerate(container):
                    if candidate is component:
                        located = f"{container_path}[{i}]"
                        break
                if located:
                    break
            paths.append(located or path)
        return paths

    def _check_codes_master(self, rule, path, target, ctx):
        errors = []
        codes_master = ctx.codes_master
        screening_type = ctx.screening_type

        components = []
        for node in resolve(target.resource, path):
            if isinstance(node, list):
                components.extend(c for c in node if isinstance(c, dict))
            elif isinstance(node, dict):
                components.append(node)

        component_paths = self._component_paths(target.resource, path, components)

        for component, component_path in zip(components, component_paths):
            question_code = first_value_as_string(component, QUESTION_CODE_PATH)
            display = first_value_as_string(component, QUESTION_DISPLAY_PATH)
            question = codes_master.find_question(question_code) if codes_master else None

            if question is None:
                errors.append(self._error(
                    ValidationErrorCode.UNKNOWN_QUESTION_CODE.value,
                    f"{component_path}.{QUESTION_CODE_PATH}",
                    f"Question code '{question_code or ''}' is not in the codes master",
                    ErrorContext(question_code=question_code, question_display=display)
                ))
                continue

            context = ErrorContext(
                screening_type=question.screening_type,
                question_code=question.question_code,
                question_display=question.question_display,
                allowed_answers=list(question.allowed_answers)
            )

            if (
                screening_type
                and question.screening_type
                and question.screening_type.upper() != screening_type.upper()
            ):
                errors.append(self._error(
                    ValidationErrorCode.INVALID_SCREENING_TYPE_FOR_QUESTION.value,
                    f"{component_path}.{QUESTION_CODE_PATH}",
                    f"Question '{question.question_code}' belongs to screening type "
                    f"'{question.screening_type}', not '{screening_type}'",
                    context
                ))

            # A component without a display is not checked against the codes master
            if (
                display
                and question.question_display
                and normalize_display(display) != normalize_display(question.question_display)
            ):
                if ctx.options.strict_display_match:
                    errors.append(self._error(
                        ValidationErrorCode.INVALID_QUESTION_DISPLAY.value,
                        f"{component_path}.{QUESTION_DISPLAY_PATH}",
                        f"Display '{display}' does not match "
                        f"'{question.question_display}' for question '{question.question_code}'",
                        context
                    ))
                else:
                    ctx.logger.warn(
                        "Question display mismatch ignored",
                        question_code=question.question_code,
                        found=display,
                        expected=question.question_display
                    )

            answer = first_value_as_string(component, ANSWER_PATH)
            answer_path = f"{component_path}.{ANSWER_PATH}"
            if answer is None or not answer.strip():
                errors.append(self._error(
                    ValidationErrorCode.INVALID_ANSWER_VALUE.value,
                    answer_path,
                    f"Answer is missing for question '{question.question_code}'",
                    context
                ))
                continue

            if not question.allowed_answers:
                continue

            if question.is_multi_value:
                parts = split_multi_value(answer)
            else:
                parts = [answer.strip()]

            for part in parts:
                if part not in question.allowed_answers:
                    errors.append(self._error(
                        ValidationErrorCode.INVALID_ANSWER_VALUE.value,
                        answer_path,
                        f"Answer '{part}' is not allowed for question '{question.question_code}'",
                        context
                    ))

        return errors

    # ------------------------------------------------------------------
    # Type / Regex
    # ------------------------------------------------------------------

    def _check_type(self, rule, path, target, ctx):
        errors = []
        if rule.expected_type in (ExpectedType.ARRAY, ExpectedType.OBJECT):
            nodes = [n for n in resolve(target.resource, path) if n is not None]
        else:
            nodes = self._values(target.resource, path)
        for node in nodes:
            if check_type(node, rule.expected_type):
                continue
            errors.append(self._error(
                ValidationErrorCode.TYPE_MISMATCH.value,
                path,
                rule.message or (
                    f"Value '{node_to_string(node)}' at '{path}' is not a valid {rule.expected_type.value}"
                )
            ))
        return errors

    def _check_regex(self, rule, path, target, ctx):
        errors = []
        pattern = re.compile(rule.pattern)
        for node in self._values(target.resource, path):
            text = node_to_string(node)
            if pattern.fullmatch(text):
                continue
            errors.append(self._error(
                rule.error_code or ctx.regex_error_code,
                path,
                rule.message or f"Value '{text}' at '{path}' does not match pattern {rule.pattern}"
            ))
        return errors

    # ------------------------------------------------------------------
    # Reference
    # ------------------------------------------------------------------

    def _check_reference(self, rule, path, target, ctx):
        errors = []
        for node in resolve(target.resource, path):
            reference = node.get("reference") if isinstance(node, dict) else node
            if is_empty_node(reference):
                continue
            reference = node_to_string(reference).strip()
            field_path = f"{path}.reference" if isinstance(node, dict) else path

            if reference.lower().startswith(URN_UUID_PREFIX):
                referenced = ctx.find_by_full_url(reference)
                if referenced is None:
                    errors.append(self._error(
                        ValidationErrorCode.REFERENCE_NOT_FOUND.value,
                        field_path,
                        f"Reference '{reference}' does not match any entry fullUrl"
                    ))
                    continue
                referenced_type = referenced.get("resourceType")
            else:
                match = _RELATIVE_REFERENCE.search(reference)
                if match is None:
                    errors.append(self._error(
                        ValidationErrorCode.INVALID_REFERENCE_FORMAT.value,
                        field_path,
                        f"Reference '{reference}' is neither 'Type/id' nor 'urn:uuid:<guid>'"
                    ))
                    continue
                referenced_type = match.group(1)

            if referenced_type not in rule.target_types:
                errors.append(self._error(
                    ValidationErrorCode.INVALID_REFERENCE_TYPE.value,
                    field_path,
                    rule.message or (
                        f"Reference '{reference}' points to {referenced_type}, "
                        f"expected one of {', '.join(rule.target_types)}"
                    )
                ))
        return errors

    # ------------------------------------------------------------------
    # CodeSystem / FullUrlIdMatch
    # ------------------------------------------------------------------

    def _check_code_system(self, rule, path, target, ctx):
        code_system = ctx.codes_master.find_code_system(rule.system) if ctx.codes_master else None
        if code_system is None:
            # Unreachable for metadata that passed loading
            return []

        errors = []
        concepts = [ConceptInfo(code=c.code, display=c.display) for c in code_system.concepts]
        for node in self._values(target.resource, path):
            code = node.get("code") if isinstance(node, dict) else node
            if is_empty_node(code):
                continue
            code = node_to_string(code)
            if code_system.has_code(code):
                continue
            errors.append(self._error(
                ValidationErrorCode.INVALID_CODE.value,
                path,
                rule.message or f"Code '{code}' is not defined in {code_system.system}",
                ErrorContext(code_system_concepts=concepts)
            ))
        return errors

    def _check_full_url_id_match(self, rule, path, target, ctx):
        id_path = path or "id"
        resource_id = first_value_as_string(target.resource, id_path)
        full_url = target.full_url
        if not resource_id or not full_url:
            return []

        if full_url.lower().startswith(URN_UUID_PREFIX):
            url_id = full_url[len(URN_UUID_PREFIX):]
        else:
            url_id = full_url.rstrip("/").rsplit("/", 1)[-1]

        if url_id.lower() == resource_id.lower():
            return []
        return [self._error(
            ValidationErrorCode.ID_FULLURL_MISMATCH.value,
            id_path,
            rule.message or f"Resource id '{resource_id}' does not match fullUrl '{full_url}'"
        )]


_rule_evaluator_instance = None


def get_rule_evaluator() -> RuleEvaluator:
    """
    Get singleton instance of RuleEvaluator.

    Returns:
        RuleEvaluator instance
    """
    global _rule_evaluator_instance
    if _rule_evaluator_instance is None:
        _rule_evaluator_instance = RuleEvaluator()
    return _rule_evaluator_instance

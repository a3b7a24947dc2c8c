"""
Scope Matchers

Locate the bundle entries a rule set applies to. Three closed variants:

- FixedResourceScope: the single resource of a type (Encounter, Patient, ...)
- DiscriminatorScope: Observations whose code.coding[0].code equals a
  screening code (HS, OS, VS)
- MatchConditionScope: resources of a type whose {path, expected}
  conditions all hold
"""

from typing import Any, Dict, List, Optional

from ..config.constants import OBSERVATION_RESOURCE_TYPE, ScreeningType
from ..models.metadata import MatchCondition, RuleSet
from ..models.validation_result import ResourcePointer
from ..path.resolver import discriminator_code, first_value_as_string, has_typed_entry


_SCREENING_CODES = {s.value for s in ScreeningType}


class ScopeTarget:
    """One in-scope bundle entry"""

    __slots__ = ("entry_index", "full_url", "resource")

    def __init__(self, entry_index: int, full_url: Optional[str], resource: Dict[str, Any]):
        self.entry_index = entry_index
        self.full_url = full_url
        self.resource = resource

    @property
    def resource_type(self) -> Optional[str]:
        return self.resource.get("resourceType")

    @property
    def resource_id(self) -> Optional[str]:
        value = self.resource.get("id")
        return str(value) if value is not None else None

    def pointer(self) -> ResourcePointer:
        return ResourcePointer(
            entry_index=self.entry_index,
            full_url=self.full_url,
            resource_type=self.resource_type,
            resource_id=self.resource_id
        )


def iter_entries(bundle: Any):
    """Yield (index, fullUrl, resource) for every entry holding a resource."""
    entries = bundle.get("entry") if isinstance(bundle, dict) else None
    if not isinstance(entries, list):
        return
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        resource = entry.get("resource")
        if isinstance(resource, dict):
            full_url = entry.get("fullUrl")
            yield index, (str(full_url) if full_url is not None else None), resource


class ScopeMatcher:
    """Base class; subclasses implement matches()"""

    single = False

    def __init__(self, resource_type: str, screening_type: Optional[str] = None):
        self.resource_type = resource_type
        self.screening_type = screening_type

    def matches(self, resource: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def find_targets(self, bundle: Any) -> List[ScopeTarget]:
        targets = []
        for index, full_url, resource in iter_entries(bundle):
            if resource.get("resourceType") != self.resource_type:
                continue
            if self.matches(resource):
                targets.append(ScopeTarget(index, full_url, resource))
                if self.single:
                    break
        return targets

    def describe(self) -> str:
        return self.resource_type


class FixedResourceScope(ScopeMatcher):
    """At most one resource of the type (first in document order)"""

    single = True

    def matches(self, resource: Dict[str, Any]) -> bool:
        return True


class DiscriminatorScope(ScopeMatcher):
    """All resources of the type carrying a discriminator code"""

    def __init__(self, resource_type: str, code: str):
        screening = code if resource_type == OBSERVATION_RESOURCE_TYPE else None
        super().__init__(resource_type, screening)
        self.code = code

    def matches(self, resource: Dict[str, Any]) -> bool:
        return discriminator_code(resource) == self.code

    def find_targets(self, bundle: Any) -> List[ScopeTarget]:
        if not has_typed_entry(bundle, self.resource_type, self.code):
            return []
        return super().find_targets(bundle)

    def describe(self) -> str:
        return f"{self.resource_type}:{self.code}"


class MatchConditionScope(ScopeMatcher):
    """All resources of the type whose conditions hold"""

    def __init__(
        self,
        resource_type: str,
        conditions: List[MatchCondition],
        screening_type: Optional[str] = None
    ):
        super().__init__(resource_type, screening_type)
        self.conditions = conditions

    def matches(self, resource: Dict[str, Any]) -> bool:
        return all(
            first_value_as_string(resource, c.path) == c.expected
            for c in self.conditions
        )

    def describe(self) -> str:
        rendered = ", ".join(f"{c.path}={c.expected}" for c in self.conditions)
        return f"{self.resource_type}[{rendered}]" if rendered else self.resource_type


def build_scope_matcher(rule_set: RuleSet) -> ScopeMatcher:
    """
    Choose the matcher for a rule set.

    Order of precedence:
    1. scopeDefinition -> MatchConditionScope
    2. resourceType "Type:CODE", or a screening scope name (HS/OS/VS)
       -> DiscriminatorScope
    3. otherwise FixedResourceScope of resourceType, falling back to the
       scope name up to its first dot

    Args:
        rule_set: Rule set to match

    Returns:
        ScopeMatcher
    """
    scope = rule_set.scope.strip()
    definition = rule_set.scope_definition

    if definition is not None:
        screening_type = None
        if scope.upper() in _SCREENING_CODES:
            screening_type = scope.upper()
        elif definition.resource_type == OBSERVATION_RESOURCE_TYPE and definition.match:
            screening_type = definition.match[0].expected
        return MatchConditionScope(definition.resource_type, definition.match, screening_type)

    resource_type = (rule_set.resource_type or "").strip()
    if ":" in resource_type:
        base_type, code = resource_type.split(":", 1)
        return DiscriminatorScope(base_type.strip(), code.strip())

    if scope.upper() in _SCREENING_CODES and resource_type in ("", OBSERVATION_RESOURCE_TYPE):
        return DiscriminatorScope(OBSERVATION_RESOURCE_TYPE, scope.upper())

    return FixedResourceScope(resource_type or scope.split(".")[0])

"""
CPS Path Resolver

Evaluates parsed CPS paths against an untyped JSON tree (dicts, lists
and scalars from json.loads).

Resolution never raises and never mutates the tree: a missing property,
an out-of-range index or a filter that matches nothing simply yields an
empty result. When the node being navigated is itself a list, the
segment is applied to every element and the results are concatenated,
so authors do not have to index every intermediate array.
"""

from typing import Any, List, Optional

from ..config.constants import OBSERVATION_RESOURCE_TYPE, ORGANIZATION_RESOURCE_TYPE
from ..models.validation_result import PathAnalysis
from ..utils.json_utils import node_to_string
from .parser import (
    IndexFilter,
    KeyValueFilter,
    PathSegment,
    WildcardFilter,
    format_segment,
    parse_path,
)


Node = Any

# Secondary discriminator per resource type
DISCRIMINATOR_PATHS = {
    OBSERVATION_RESOURCE_TYPE: "code.coding[0].code",
    ORGANIZATION_RESOURCE_TYPE: "type[0].coding[0].code",
}


# ============================================================================
# SEGMENT EVALUATION
# ============================================================================

def _apply_filter(value: Node, segment_filter) -> List[Node]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]

    if isinstance(segment_filter, IndexFilter):
        if 0 <= segment_filter.index < len(items):
            return [items[segment_filter.index]]
        return []

    if isinstance(segment_filter, WildcardFilter):
        return list(items)

    if isinstance(segment_filter, KeyValueFilter):
        return [
            item for item in items
            if element_matches(item, segment_filter.key, segment_filter.value)
        ]

    return []


def _apply_segment(node: Node, segment: PathSegment) -> List[Node]:
    if isinstance(node, list):
        results = []
        for element in node:
            results.extend(_apply_segment(element, segment))
        return results

    if not isinstance(node, dict) or segment.name not in node:
        return []

    value = node[segment.name]
    if segment.filter is None:
        return [value]
    return _apply_filter(value, segment.filter)


def _step(current: List[Node], segment: PathSegment) -> List[Node]:
    results = []
    for node in current:
        results.extend(_apply_segment(node, segment))
    return results


def value_matches(node: Node, expected: str) -> bool:
    """
    Compare a resolved filter-key node with a filter value.

    Scalars compare by their JSON text; objects match on their code or
    system; lists match when any element matches.
    """
    if node is None:
        return False
    if isinstance(node, list):
        return any(value_matches(item, expected) for item in node)
    if isinstance(node, dict):
        for key in ("code", "system"):
            candidate = node.get(key)
            if candidate is not None and not isinstance(candidate, (dict, list)):
                if node_to_string(candidate) == expected:
                    return True
        return False
    return node_to_string(node) == expected


def element_matches(element: Node, key: str, expected: str) -> bool:
    """True if `key`, resolved relative to element, equals expected."""
    return any(value_matches(candidate, expected) for candidate in resolve(element, key))


# ============================================================================
# PUBLIC API
# ============================================================================

def resolve(root: Node, path: Optional[str]) -> List[Node]:
    """
    Resolve a path to every matching node.

    Args:
        root: Document node to start from
        path: CPS path

    Returns:
        Matching nodes in document order (empty when nothing matches).
        A property that is present with a null value yields None.
    """
    current = [root]
    for segment in parse_path(path):
        current = _step(current, segment)
        if not current:
            break
    return current


def path_exists(root: Node, path: Optional[str]) -> bool:
    return len(resolve(root, path)) > 0


def first_value_as_string(root: Node, path: Optional[str]) -> Optional[str]:
    """
    String form of the first resolved node.

    Returns:
        None when the path is missing or the first node is null
    """
    nodes = resolve(root, path)
    if not nodes or nodes[0] is None:
        return None
    return node_to_string(nodes[0])


def all_values_as_strings(root: Node, path: Optional[str]) -> List[str]:
    """
    String form of every resolved scalar.

    Lists at the end of the path are expanded one level so a path to an
    array of strings yields each string. Nulls are skipped.
    """
    values = []
    for node in resolve(root, path):
        if node is None:
            continue
        if isinstance(node, list):
            values.extend(node_to_string(item) for item in node if item is not None)
        else:
            values.append(node_to_string(node))
    return values


def resolve_filters_to_indices(root: Node, path: Optional[str]) -> str:
    """
    Rewrite key/value filters as the numeric indices they select.

    Walks the path keeping one context node. For a key/value filter the
    first matching element's index is recorded and becomes the new
    context. When nothing matches, or after a wildcard, the segment is
    kept as written and the context is cleared so later segments are
    not resolved against the wrong node.

    Example:
        "extension[url:B].valueString" -> "extension[1].valueString"

    Args:
        root: Document node
        path: CPS path

    Returns:
        Equivalent path using indices wherever they could be resolved
    """
    parts = []
    context = root

    for segment in parse_path(path):
        value = context.get(segment.name) if isinstance(context, dict) else None
        segment_filter = segment.filter

        if segment_filter is None:
            parts.append(segment.name)
            context = value
        elif isinstance(segment_filter, IndexFilter):
            parts.append(format_segment(segment))
            items = value if isinstance(value, list) else ([value] if value is not None else [])
            index = segment_filter.index
            context = items[index] if 0 <= index < len(items) else None
        elif isinstance(segment_filter, KeyValueFilter):
            items = value if isinstance(value, list) else ([value] if value is not None else [])
            found = None
            for i, item in enumerate(items):
                if element_matches(item, segment_filter.key, segment_filter.value):
                    found = i
                    break
            if found is None:
                parts.append(segment.raw)
                context = None
            else:
                parts.append(f"{segment.name}[{found}]")
                context = items[found]
        else:
            parts.append(segment.raw)
            context = None

    return ".".join(parts)


def analyze_path(root: Node, path: Optional[str]) -> Optional[PathAnalysis]:
    """
    Find the first segment at which a path stops resolving.

    Args:
        root: Document node
        path: CPS path

    Returns:
        PathAnalysis for the first failing segment, or None when the
        whole path resolves
    """
    segments = parse_path(path)
    current = [root]
    for depth, segment in enumerate(segments):
        current = _step(current, segment)
        if not current:
            return PathAnalysis(
                parent_path_exists=(depth == len(segments) - 1),
                path_mismatch_segment=segment.name,
                mismatch_depth=depth
            )
    return None


def discriminator_code(resource: Node) -> Optional[str]:
    """Secondary discriminator of a resource (Observation code, Organization type)."""
    if not isinstance(resource, dict):
        return None
    discriminator_path = DISCRIMINATOR_PATHS.get(resource.get("resourceType"))
    if discriminator_path is None:
        return None
    return first_value_as_string(resource, discriminator_path)


def has_typed_entry(root: Node, resource_type: str, discriminator: Optional[str] = None) -> bool:
    """
    Check whether a bundle has an entry of a type (and discriminator).

    has_typed_entry(bundle, "Observation", "HS") is True when some entry
    holds an Observation whose code.coding[0].code is HS.

    Args:
        root: Bundle node
        resource_type: resourceType to look for
        discriminator: Optional secondary code

    Returns:
        True on the first match
    """
    entries = root.get("entry") if isinstance(root, dict) else None
    if not isinstance(entries, list):
        return False

    for entry in entries:
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(resource, dict) or resource.get("resourceType") != resource_type:
            continue
        if discriminator is None:
            return True
        if discriminator_code(resource) == discriminator:
            return True
    return False

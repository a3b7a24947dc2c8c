"""
JSON Node Utilities

Helpers for the untyped document tree produced by json.loads:
parsing with structured errors, rendering nodes as strings and
splitting pipe-delimited answers.
"""

import json
from typing import Any, List, Optional, Union

from ..config.constants import MULTI_VALUE_DELIMITER
from .error_handler import invalid_json_error


Node = Any


def parse_document(source: Union[str, bytes, dict, list], what: str = "document") -> Node:
    """
    Parse JSON text into a node tree.

    Already-parsed dicts and lists are returned unchanged so callers can
    pass either form.

    Args:
        source: JSON text or a parsed node
        what: Name used in the error message

    Returns:
        Parsed node

    Raises:
        DocumentParseError: If the text is not valid JSON
    """
    if isinstance(source, (dict, list)):
        return source
    if source is None:
        raise invalid_json_error(what, ValueError("no content"))
    try:
        return json.loads(source)
    except (TypeError, ValueError) as e:
        raise invalid_json_error(what, e)


def node_to_string(node: Node) -> str:
    """
    Render a node the way it appears in JSON text.

    Strings are returned bare, booleans as true/false, null as an empty
    string and containers as compact JSON.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, bool):
        return "true" if node else "false"
    if isinstance(node, int):
        return str(node)
    return json.dumps(node, ensure_ascii=False, separators=(",", ":"))


def is_empty_node(node: Node) -> bool:
    """True for null, blank strings and empty containers."""
    if node is None:
        return True
    if isinstance(node, str):
        return not node.strip()
    if isinstance(node, (list, dict)):
        return len(node) == 0
    return False


def split_multi_value(value: Optional[str]) -> List[str]:
    """
    Split a pipe-delimited answer into trimmed, non-empty parts.

    "500Hz – R|1000Hz – NR" -> ["500Hz – R", "1000Hz – NR"]
    """
    if not value:
        return []
    return [part.strip() for part in value.split(MULTI_VALUE_DELIMITER) if part.strip()]


def get_in(node: Node, *keys: Union[str, int]) -> Node:
    """
    Direct nested lookup: get_in(r, "code", "coding", 0, "code").

    Returns None as soon as a key or index is missing.
    """
    current = node
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or key < 0 or key >= len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current

"""
Type Validation Utilities

Checks used by Type rules. Each checker takes the resolved node and
returns True when it parses as the named type:

- string: a JSON string
- integer: 32-bit signed integer (JSON number or numeric string)
- decimal: plain decimal number, no exponent
- boolean: true/false, case-insensitive
- guid: 8-4-4-4-12 hex, 32 hex digits, or either in braces
- guid-uri: urn:uuid: followed by a hyphenated GUID
- date: YYYY-MM-DD
- datetime: ISO 8601 date-time
- pipestring[]: '|' separated string whose parts are all non-empty
- array / object: JSON array / object
"""

import re
from datetime import datetime
from typing import Any, Callable, Dict, Union

from ..config.constants import ExpectedType, MULTI_VALUE_DELIMITER
from ..utils.json_utils import node_to_string


INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1

REGEX_PATTERNS = {
    "integer": r'^[+-]?\d+$',
    "decimal": r'^[+-]?(\d+(\.\d*)?|\.\d+)$',
    "guid": r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$',
    "guid_compact": r'^[0-9a-fA-F]{32}$',
    "guid_uri": r'^urn:uuid:[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$',
    "date": r'^\d{4}-\d{2}-\d{2}$',
}


def _text(node: Any) -> str:
    return node_to_string(node).strip()


def validate_string(node: Any) -> bool:
    return isinstance(node, str)


def validate_integer(node: Any) -> bool:
    """
    Validate a 32-bit integer.

    Accepts JSON integers and numeric strings such as "42" or "-7".
    Booleans and numbers with a fractional part are rejected.
    """
    if isinstance(node, bool):
        return False
    text = _text(node)
    if not re.match(REGEX_PATTERNS["integer"], text):
        return False
    return INT32_MIN <= int(text) <= INT32_MAX


def validate_decimal(node: Any) -> bool:
    if isinstance(node, bool):
        return False
    if isinstance(node, (int, float)):
        return True
    return bool(re.match(REGEX_PATTERNS["decimal"], _text(node)))


def validate_boolean(node: Any) -> bool:
    if isinstance(node, bool):
        return True
    return _text(node).lower() in ("true", "false")


def validate_guid(node: Any) -> bool:
    """
    Validate a GUID.

    Accepts:
    - 3f2504e0-4f89-11d3-9a0c-0305e82c3301
    - 3f2504e04f8911d39a0c0305e82c3301
    - {3f2504e0-4f89-11d3-9a0c-0305e82c3301}
    """
    if not isinstance(node, str):
        return False
    text = node.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    return bool(
        re.match(REGEX_PATTERNS["guid"], text)
        or re.match(REGEX_PATTERNS["guid_compact"], text)
    )


def validate_guid_uri(node: Any) -> bool:
    return isinstance(node, str) and bool(re.match(REGEX_PATTERNS["guid_uri"], node.strip()))


def validate_date(node: Any) -> bool:
    """Validate a calendar date in YYYY-MM-DD form."""
    if not isinstance(node, str):
        return False
    text = node.strip()
    if not re.match(REGEX_PATTERNS["date"], text):
        return False
    try:
        datetime.strptime(text, "%Y-%m-%d")
        return True
    except ValueError:
        return False


def validate_datetime(node: Any) -> bool:
    """
    Validate an ISO 8601 date-time.

    Accepts offsets and a trailing Z, e.g. 2025-01-10T09:00:00+08:00 or
    2025-01-10T01:00:00Z. A bare date is also a valid date-time.
    """
    if not isinstance(node, str):
        return False
    text = node.strip()
    if not text:
        return False
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        datetime.fromisoformat(text)
        return True
    except ValueError:
        return False


def validate_pipe_string_array(node: Any) -> bool:
    if not isinstance(node, str):
        return False
    parts = node.split(MULTI_VALUE_DELIMITER)
    return all(part.strip() for part in parts)


def validate_array(node: Any) -> bool:
    return isinstance(node, list)


def validate_object(node: Any) -> bool:
    return isinstance(node, dict)


TYPE_VALIDATORS: Dict[ExpectedType, Callable[[Any], bool]] = {
    ExpectedType.STRING: validate_string,
    ExpectedType.INTEGER: validate_integer,
    ExpectedType.DECIMAL: validate_decimal,
    ExpectedType.BOOLEAN: validate_boolean,
    ExpectedType.GUID: validate_guid,
    ExpectedType.GUID_URI: validate_guid_uri,
    ExpectedType.DATE: validate_date,
    ExpectedType.DATETIME: validate_datetime,
    ExpectedType.PIPE_STRING_ARRAY: validate_pipe_string_array,
    ExpectedType.ARRAY: validate_array,
    ExpectedType.OBJECT: validate_object,
}


def check_type(node: Any, expected_type: Union[str, ExpectedType]) -> bool:
    """
    Check whether a node parses as expected_type.

    Args:
        node: Resolved document node
        expected_type: ExpectedType or its string value

    Returns:
        True if the node matches the type

    Raises:
        ValueError: If expected_type is not a known type name
    """
    return TYPE_VALIDATORS[ExpectedType(expected_type)](node)

"""
CPS Path Parser

Parses CPS path expressions into segments.

Grammar:
    path    := segment ('.' segment)*
    segment := name | name '[' body ']'
    body    := '*' | integer | key ':' value | ResourceType

Examples:
    entry[resource.resourceType:Patient].resource.name[0].text
    component[QuestionCode:SQ-L2H9-00000001].valueString
    extension[url:https://example.org/grc].valueString
    telecom[*].value

Dots inside brackets do not split segments, so filter keys may be
nested paths. The key QuestionCode is shorthand for code.coding[0].code.
Parsing never raises: a segment with an unclosed bracket is kept as a
literal property name.
"""

from functools import lru_cache
from typing import List, Optional, Tuple

from ..config.constants import (
    QUESTION_CODE_ALIAS,
    QUESTION_CODE_PATH,
    RESOURCE_TYPE_FILTER_KEY,
)


class IndexFilter:
    """Select one array element by position"""

    __slots__ = ("index",)

    def __init__(self, index: int):
        self.index = index

    def __eq__(self, other):
        return isinstance(other, IndexFilter) and other.index == self.index

    def __repr__(self):
        return f"IndexFilter({self.index})"


class KeyValueFilter:
    """Select array elements whose sub-path `key` equals `value`"""

    __slots__ = ("key", "value")

    def __init__(self, key: str, value: str):
        self.key = key
        self.value = value

    def __eq__(self, other):
        return (
            isinstance(other, KeyValueFilter)
            and other.key == self.key
            and other.value == self.value
        )

    def __repr__(self):
        return f"KeyValueFilter({self.key!r}, {self.value!r})"


class WildcardFilter:
    """Select every array element"""

    __slots__ = ()

    def __eq__(self, other):
        return isinstance(other, WildcardFilter)

    def __repr__(self):
        return "WildcardFilter()"


class PathSegment:
    """One dot-separated step of a path"""

    __slots__ = ("name", "filter", "raw")

    def __init__(self, name: str, filter=None, raw: Optional[str] = None):
        self.name = name
        self.filter = filter
        self.raw = raw if raw is not None else name

    @property
    def has_filter(self) -> bool:
        return self.filter is not None

    def __eq__(self, other):
        return (
            isinstance(other, PathSegment)
            and other.name == self.name
            and other.filter == self.filter
        )

    def __repr__(self):
        if self.filter is None:
            return f"PathSegment({self.name!r})"
        return f"PathSegment({self.name!r}, {self.filter!r})"


def split_top_level(text: str, separator: str) -> List[str]:
    """
    Split on separator characters that are not inside brackets.

    An unclosed bracket swallows the rest of the text into the last part.
    """
    parts = []
    depth = 0
    start = 0
    for i, ch in enumerate(text):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth = max(depth - 1, 0)
        elif ch == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def _parse_filter(body: str):
    body = body.strip()

    if body == "" or body == "*":
        return WildcardFilter()

    if body.isdigit():
        return IndexFilter(int(body))

    key_and_value = split_top_level(body, ":")
    if len(key_and_value) == 1:
        # Bare resource type selector: entry[Patient]
        return KeyValueFilter(RESOURCE_TYPE_FILTER_KEY, body)

    key = key_and_value[0].strip()
    value = ":".join(key_and_value[1:]).strip()
    if key.lower() == QUESTION_CODE_ALIAS.lower():
        key = QUESTION_CODE_PATH
    return KeyValueFilter(key, value)


def _parse_segment(raw: str) -> PathSegment:
    open_at = raw.find("[")
    if open_at < 0:
        return PathSegment(raw)

    if not raw.endswith("]"):
        return PathSegment(raw)

    # The bracket opened at open_at must close on the last character
    depth = 0
    for i, ch in enumerate(raw[open_at:]):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0 and open_at + i != len(raw) - 1:
                return PathSegment(raw)
    if depth != 0:
        return PathSegment(raw)

    name = raw[:open_at]
    body = raw[open_at + 1:-1]
    return PathSegment(name, _parse_filter(body), raw)


@lru_cache(maxsize=1024)
def _parse_cached(path: str) -> Tuple[PathSegment, ...]:
    parts = split_top_level(path, ".")
    return tuple(_parse_segment(part.strip()) for part in parts if part.strip())


def parse_path(path: Optional[str]) -> List[PathSegment]:
    """
    Parse a CPS path into segments.

    Args:
        path: Path expression

    Returns:
        List of PathSegment (empty for an empty path)
    """
    if not path:
        return []
    return list(_parse_cached(path))


def format_segment(segment: PathSegment) -> str:
    """Render a segment back to path text."""
    f = segment.filter
    if f is None:
        return segment.name
    if isinstance(f, IndexFilter):
        return f"{segment.name}[{f.index}]"
    if isinstance(f, WildcardFilter):
        return f"{segment.name}[*]"
    return f"{segment.name}[{f.key}:{f.value}]"


def strip_resource_prefix(path: str, resource_type: Optional[str]) -> str:
    """
    Drop a leading "<ResourceType>." from a rule path.

    "Patient.identifier[0].value" with Patient -> "identifier[0].value"
    """
    if not path or not resource_type:
        return path
    base_type = resource_type.split(":")[0]
    prefix = base_type + "."
    if path.startswith(prefix):
        return path[len(prefix):]
    if path == base_type:
        return ""
    return path

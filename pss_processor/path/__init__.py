"""
CPS Path Module

Components:
- parser.py: Path grammar (segments and filters)
- resolver.py: Path evaluation and auxiliary walks
"""

from .parser import (
    PathSegment,
    IndexFilter,
    KeyValueFilter,
    WildcardFilter,
    parse_path,
    strip_resource_prefix,
)
from .resolver import (
    resolve,
    path_exists,
    first_value_as_string,
    all_values_as_strings,
    resolve_filters_to_indices,
    analyze_path,
    discriminator_code,
    has_typed_entry,
)

__all__ = [
    "PathSegment",
    "IndexFilter",
    "KeyValueFilter",
    "WildcardFilter",
    "parse_path",
    "strip_resource_prefix",
    "resolve",
    "path_exists",
    "first_value_as_string",
    "all_values_as_strings",
    "resolve_filters_to_indices",
    "analyze_path",
    "discriminator_code",
    "has_typed_entry",
]

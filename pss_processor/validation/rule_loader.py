"""
Validation Metadata Loader

Loads and parses rule metadata from JSON text or from JSON/YAML files.
Provides type-safe access to rule sets, and caches parsed metadata by
content hash so repeated calls with the same text skip re-parsing.
"""

import hashlib
import json
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..config.constants import RuleType
from ..config.settings import ProcessorSettings, get_settings
from ..models.metadata import RuleSet, ValidationMetadata
from ..utils.error_handler import ErrorCode, MetadataParseError, metadata_error
from ..utils.logger import get_logger


logger = get_logger(__name__)


def _lower_first(key: str) -> str:
    return key[:1].lower() + key[1:] if key else key


def normalize_keys(data: Any) -> Any:
    """
    Convert PascalCase keys to camelCase throughout a parsed document.

    {"RuleSets": [{"Scope": "HS"}]} -> {"ruleSets": [{"scope": "HS"}]}
    """
    if isinstance(data, dict):
        return {
            (_lower_first(k) if isinstance(k, str) else k): normalize_keys(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def _describe_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for detail in error.errors()[:5]:
        location = ".".join(str(p) for p in detail.get("loc", ()))
        parts.append(f"{location}: {detail.get('msg')}")
    return "; ".join(parts)


def _schema_error_code(error: PydanticValidationError) -> ErrorCode:
    details = error.errors()
    if any(d.get("type") == "union_tag_invalid" for d in details):
        return ErrorCode.UNKNOWN_RULE_TYPE
    if any(d.get("loc", ())[:1] in (("pathSyntax",), ("path_syntax",)) for d in details):
        return ErrorCode.UNSUPPORTED_PATH_SYNTAX
    return ErrorCode.METADATA_SCHEMA_ERROR


class MetadataCache:
    """
    Bounded cache of parsed metadata keyed by SHA-256 of the source text.

    Least recently used entries are evicted first. Safe to share between
    threads.
    """

    def __init__(self, max_entries: int = 16):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ValidationMetadata]" = OrderedDict()
        self._lock = threading.RLock()

    @staticmethod
    def content_hash(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[ValidationMetadata]:
        with self._lock:
            metadata = self._entries.get(key)
            if metadata is not None:
                self._entries.move_to_end(key)
            return metadata

    def put(self, key: str, metadata: ValidationMetadata):
        with self._lock:
            self._entries[key] = metadata
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class RuleLoader:
    """
    Loads and validates rule metadata.

    Every rule is checked when loaded: unknown rule kinds, rules missing
    the fields their kind needs, invalid regex patterns, CodesMaster
    rules without a codes master and CodeSystem rules naming an unknown
    system are all rejected with MetadataParseError.
    """

    def __init__(
        self,
        settings: Optional[ProcessorSettings] = None,
        cache: Optional[MetadataCache] = None
    ):
        """
        Initialize the RuleLoader.

        Args:
            settings: Processor settings (uses the global settings if None)
            cache: Metadata cache (a private cache is created if None)
        """
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else MetadataCache(self.settings.metadata_cache_size)
        self._metadata: Optional[ValidationMetadata] = None

    @property
    def metadata(self) -> Optional[ValidationMetadata]:
        return self._metadata

    def load_from_text(self, text: Union[str, bytes], use_cache: bool = True) -> ValidationMetadata:
        """
        Load metadata from JSON text.

        Args:
            text: Metadata JSON shaped as {version, pathSyntax, ruleSets, codesMaster}
            use_cache: Reuse a previously parsed result for identical text

        Returns:
            ValidationMetadata

        Raises:
            MetadataParseError: If the text is not valid JSON or the
                metadata is structurally invalid
        """
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        if not isinstance(text, str) or not text.strip():
            raise metadata_error("metadata text is empty")

        key = MetadataCache.content_hash(text)
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Metadata cache hit", hash=key[:12])
                self._metadata = cached
                return cached

        try:
            data = json.loads(text)
        except ValueError as e:
            raise metadata_error(f"invalid JSON ({e})", cause=e)

        metadata = self.load_from_data(data)
        if use_cache:
            self.cache.put(key, metadata)
        return metadata

    def load_from_file(self, path: Union[str, Path]) -> ValidationMetadata:
        """
        Load metadata from a .json, .yaml or .yml file.

        Args:
            path: Metadata file path

        Returns:
            ValidationMetadata

        Raises:
            MetadataParseError: If the file is missing or invalid
        """
        path = Path(path)
        if not path.exists():
            raise metadata_error(f"file not found: {path}", code=ErrorCode.FILE_NOT_FOUND)

        with open(path, "r", encoding="utf-8") as f:
            text = f.read()

        if path.suffix.lower() in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise metadata_error(f"invalid YAML in {path.name} ({e})", cause=e)
            return self.load_from_data(data)

        return self.load_from_text(text)

    def load_from_data(self, data: Any) -> ValidationMetadata:
        """
        Validate an already parsed metadata document.

        Raises:
            MetadataParseError: If the metadata is structurally invalid
        """
        if not isinstance(data, dict):
            raise metadata_error("metadata root must be an object", code=ErrorCode.METADATA_SCHEMA_ERROR)

        try:
            metadata = ValidationMetadata.model_validate(normalize_keys(data))
        except PydanticValidationError as e:
            raise metadata_error(_describe_validation_error(e), cause=e, code=_schema_error_code(e))

        self._check_references(metadata)
        self._check_regex_error_codes(metadata)

        logger.info(
            "Metadata loaded",
            version=metadata.version,
            rule_sets=len(metadata.rule_sets),
            rules=metadata.rule_count()
        )
        self._metadata = metadata
        return metadata

    @staticmethod
    def _check_references(metadata: ValidationMetadata):
        codes_master = metadata.codes_master
        for rule_set in metadata.rule_sets:
            for rule in rule_set.rules:
                if rule.rule_type == RuleType.CODES_MASTER:
                    if codes_master is None or not codes_master.questions:
                        raise metadata_error(
                            f"Scope '{rule_set.scope}': CodesMaster rule at '{rule.path}' "
                            f"requires codesMaster.questions",
                            code=ErrorCode.METADATA_REFERENCE_ERROR
                        )
                elif rule.rule_type == RuleType.CODE_SYSTEM:
                    if codes_master is None or codes_master.find_code_system(rule.system) is None:
                        raise metadata_error(
                            f"Scope '{rule_set.scope}': CodeSystem rule at '{rule.path}' "
                            f"names unknown system '{rule.system}'",
                            code=ErrorCode.METADATA_REFERENCE_ERROR
                        )

    def _check_regex_error_codes(self, metadata: ValidationMetadata):
        if self.settings.regex_error_code:
            return
        for rule_set in metadata.rule_sets:
            for rule in rule_set.rules:
                if rule.rule_type == RuleType.REGEX and not rule.error_code:
                    raise metadata_error(
                        f"Scope '{rule_set.scope}': Regex rule at '{rule.path}' has no errorCode "
                        f"and no default Regex error code is configured",
                        code=ErrorCode.METADATA_SCHEMA_ERROR
                    )

    def get_rule_set(self, scope: str) -> Optional[RuleSet]:
        """
        Get the rule set for a scope from the last loaded metadata.

        Args:
            scope: Scope name

        Returns:
            RuleSet, or None if not loaded or not found
        """
        if self._metadata is None:
            return None
        return self._metadata.get_rule_set(scope)

    def get_scopes(self) -> List[str]:
        if self._metadata is None:
            return []
        return self._metadata.get_scopes()

    def get_rules_by_type(self, rule_type: Union[str, RuleType]) -> Dict[str, list]:
        """
        Get rules of one kind grouped by scope.

        Args:
            rule_type: Rule kind

        Returns:
            Dictionary mapping scope names to matching rules
        """
        if self._metadata is None:
            return {}
        wanted = RuleType(rule_type)
        return {
            rule_set.scope: [r for r in rule_set.rules if r.rule_type == wanted]
            for rule_set in self._metadata.rule_sets
            if any(r.rule_type == wanted for r in rule_set.rules)
        }

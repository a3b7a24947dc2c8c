"""
Resource Index

Single pass over a bundle's entries grouping resources by resourceType.
Observations are also filed under "Observation:<code>" (code taken from
code.coding[0].code) so each screening type can be fetched on its own.
"""

from typing import Any, Dict, List, Optional

from ..config.constants import OBSERVATION_RESOURCE_TYPE
from ..path.resolver import discriminator_code


class ResourceIndex:
    """Resources keyed by type and, for Observations, type:code"""

    def __init__(self, bundle: Any):
        self.by_type: Dict[str, List[Dict[str, Any]]] = {}
        self.entry_count = 0
        self._build(bundle)

    def _build(self, bundle: Any):
        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        if not isinstance(entries, list):
            return

        for entry in entries:
            self.entry_count += 1
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict):
                continue

            resource_type = resource.get("resourceType")
            if not isinstance(resource_type, str) or not resource_type:
                continue

            if resource_type == OBSERVATION_RESOURCE_TYPE:
                code = discriminator_code(resource)
                if code:
                    self.by_type.setdefault(f"{resource_type}:{code}", []).append(resource)

            self.by_type.setdefault(resource_type, []).append(resource)

    def all(self, key: str) -> List[Dict[str, Any]]:
        return self.by_type.get(key, [])

    def first(self, key: str) -> Optional[Dict[str, Any]]:
        resources = self.by_type.get(key)
        return resources[0] if resources else None

    def keys(self) -> List[str]:
        return list(self.by_type.keys())

    def __contains__(self, key: str) -> bool:
        return key in self.by_type

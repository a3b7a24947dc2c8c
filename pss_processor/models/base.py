"""
Shared pydantic base for all processor models.

Fields are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """BaseModel that reads and writes camelCase keys"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump with camelCase keys, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

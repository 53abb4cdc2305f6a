from datetime import datetime, date
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases.

    - Input: camelCase keys (API bodies, task payloads) or snake_case field names.
    - Output: `model_dump(by_alias=True)` / `model_dump_json(by_alias=True)` for camelCase.
    - Enums, dates and nested models always serialize to JSON-ready values, so
      `model_dump()` output can go straight into a JSONResponse or a Celery result.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*")
    def serialize_any(self, value):
        if isinstance(value, Enum):
            return value.value

        # datetime is a date subclass
        if isinstance(value, (datetime, date)):
            return value.isoformat()

        if isinstance(value, BaseModel):
            return value.model_dump()

        if isinstance(value, (list, tuple, set)):
            return [self.serialize_any(item) for item in value]

        if isinstance(value, dict):
            return {key: self.serialize_any(val) for key, val in value.items()}

        return value

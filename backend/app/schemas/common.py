from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel

OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"
EMAIL_PATTERN = r"^\S+@\S+\.\S+$"

ObjectId = Annotated[str, StringConstraints(pattern=OBJECT_ID_PATTERN, to_lower=True)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, pattern=EMAIL_PATTERN, max_length=255)]


class ApiModel(BaseModel):
    """Champs snake_case côté Python, camelCase sur le fil (itemName, reorderLevel...)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

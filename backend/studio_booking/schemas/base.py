"""
Base schemas with standardized field naming for consistent API responses.

Wire names are camelCase; Python code uses the snake_case field names.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StandardizedModel(BaseModel):
    """Base model with camelCase aliases and enum values on the wire"""

    model_config = ConfigDict(
        use_enum_values=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class StrictRequestModel(StandardizedModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

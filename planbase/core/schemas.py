"""
Base schema for request/response bodies.

The wire format is camelCase (``memberId``, ``subviewsEnabled``); Python
attributes stay snake_case. FastAPI serializes response models by alias.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for schemas exchanged with the frontend."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

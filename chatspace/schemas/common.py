"""Shared schema base classes."""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON while keeping snake_case attributes."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class StatusResponse(CamelModel):
    """Simple acknowledgement response."""
    success: bool = True
    message: str

"""Base schema class with camelCase alias generation.

Record and response schemas inherit from this instead of BaseModel directly.
Backend Python code stays snake_case. JSON output (API and the persisted
metadata document) becomes camelCase.
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase, outputs camelCase when dumped by alias."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "protected_namespaces": (),
    }

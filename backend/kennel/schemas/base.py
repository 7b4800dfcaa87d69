"""
Shared pydantic building blocks for request/response validation.
"""

from typing import Annotated

from pydantic import BaseModel, BeforeValidator
from pydantic.alias_generators import to_camel

from kennel.models.catalog import ServiceType

# Accepts "daycare", "boarding:small", "Trial Day", ... and stores the canonical member
ServiceField = Annotated[ServiceType, BeforeValidator(ServiceType.parse)]


class CamelModel(BaseModel):
    """JSON bodies use camelCase; Python code uses snake_case."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }

import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.core.errors import ValidationError


class APIModel(BaseModel):
    """
    Base for request/response payloads.

    Python side uses snake_case; JSON uses camelCase (productId,
    deliveryCharge, ...). Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def coerce_uuid(value, label: str) -> uuid.UUID:
    """Parse `value` as a UUID or raise ValueError('Invalid <label> id')."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValueError(f"Invalid {label} id")


def parse_id(value: str, label: str) -> uuid.UUID:
    """
    Parse a path parameter as a UUID.

    Raises:
        ValidationError (400): 'Invalid <label> id'.
    """
    try:
        return coerce_uuid(value, label)
    except ValueError as exc:
        raise ValidationError(str(exc))

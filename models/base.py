"""
Base schemas for all models.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class FrozenSchema(BaseModel):
    """
    Base for immutable pipeline values.

    Strings are kept exactly as given (raw cells must not be trimmed
    before the transformer decides what to do with them).
    Use model_copy(update=...) to derive a changed copy.
    """
    model_config = ConfigDict(
        frozen=True,
        from_attributes=True
    )

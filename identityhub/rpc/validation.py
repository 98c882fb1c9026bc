"""Request model validation for RPC handlers."""

from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from identityhub.exceptions import ErrorKind, validation_messages

M = TypeVar("M", bound=BaseModel)


def parse_request(model_cls: type[M], failure_type, fields: dict) -> tuple[Optional[M], object]:
    """Validate ``fields`` into ``model_cls``.

    Returns:
        Tuple of (model, None) on success or (None, failure envelope of
        ``failure_type``) when validation fails
    """
    try:
        return model_cls(**fields), None
    except ValidationError as e:
        errors = validation_messages(e.errors())
        return None, failure_type.fail(ErrorKind.VALIDATION_FAILURE, "Validation failed", errors)

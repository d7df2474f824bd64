# telraam_client/models/decode.py
"""
Single entry point for turning raw JSON into typed models.

Every response the client hands back goes through decode_payload(), which
converts pydantic's ValidationError into the client's DecodeError. The
error names the dotted path of the first field that failed so a contract
change in the API is easy to pinpoint from a log line.
"""

import logging
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from telraam_client.errors import DecodeError

__all__: list[str] = ['decode_payload', 'decode_with_adapter', 'error_field_path']

logger: logging.Logger = logging.getLogger(__name__)


def error_field_path(error: ValidationError, path_prefix: str = '') -> str:
    """
    Build a dotted field path from the first error in a ValidationError.

    Args:
        error: The pydantic validation error.
        path_prefix: Path of the decoded value inside a larger payload
            (e.g. 'features.2'), prepended to the error location.

    Returns:
        Dotted path such as 'report.3.date', or the prefix (or '<root>')
        when the error is not tied to a field.
    """
    details: list[Any] = error.errors()
    location: tuple[Any, ...] = tuple(details[0]['loc']) if details else ()
    parts: list[str] = [path_prefix] if path_prefix else []
    parts.extend(str(part) for part in location)
    return '.'.join(parts) if parts else '<root>'


def decode_payload[ModelT: BaseModel](
    payload: Any,
    model_type: type[ModelT],
    path_prefix: str = '',
) -> ModelT:
    """
    Validate a raw JSON payload into the given model type.

    Args:
        payload: Parsed JSON (usually a dict) from the API.
        model_type: Target pydantic model.
        path_prefix: Location of the payload within its parent, used to
            build a complete field path in the error.

    Returns:
        The validated model instance.

    Raises:
        DecodeError: If the payload does not match the model.
    """
    try:
        return model_type.model_validate(payload)
    except ValidationError as error:
        field_path: str = error_field_path(error, path_prefix)
        logger.debug(
            'Failed to decode %s at %r: %s', model_type.__name__, field_path, error
        )
        raise DecodeError(
            field=field_path,
            message=error.errors()[0]['msg'] if error.errors() else str(error),
        ) from error


def decode_with_adapter[ValueT](
    payload: Any,
    adapter: TypeAdapter[ValueT],
    path_prefix: str = '',
) -> ValueT:
    """
    Validate a payload against a TypeAdapter (for unions such as Geometry).

    Raises:
        DecodeError: If the payload does not match the adapted type.
    """
    try:
        return adapter.validate_python(payload)
    except ValidationError as error:
        raise DecodeError(
            field=error_field_path(error, path_prefix),
            message=error.errors()[0]['msg'] if error.errors() else str(error),
        ) from error

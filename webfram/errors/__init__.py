"""Monadic Error Handling System

Result type plus typed application errors for the binding layer.

Key components:
- Result[T, E]: Monadic container for success/failure
- AppError: Base error type with full context
- ErrorCode: Error code taxonomy with HTTP status mapping
- Builder functions: Ergonomic error construction
- FastAPI handlers: Structured error envelope for every failure

Usage:
    from webfram.errors import Ok, Err, invalid_json

    def decode(raw: bytes) -> Result[dict, AppError]:
        try:
            return Ok(json.loads(raw))
        except ValueError as e:
            return invalid_json(str(e), origin="bind.json")
"""
from .types import (
    Result,
    Ok,
    Err,
    AppError,
    ErrorCode,
    ErrorContext,
)

from .builders import (
    validation_error,
    field_errors,
    invalid_json,
    invalid_xml,
    invalid_form,
    unknown_field,
    invalid_type,
    unsupported_media_type,
)

from .handlers import (
    AppErrorException,
    register_error_handlers,
    result_to_response,
    raise_error,
    raise_result,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AppError",
    "ErrorCode",
    "ErrorContext",
    "validation_error",
    "field_errors",
    "invalid_json",
    "invalid_xml",
    "invalid_form",
    "unknown_field",
    "invalid_type",
    "unsupported_media_type",
    "AppErrorException",
    "register_error_handlers",
    "result_to_response",
    "raise_error",
    "raise_result",
]

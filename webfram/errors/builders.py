"""Decode and Validation Error Builders

Ergonomic constructors for the errors the binding layer produces.
Each builder creates an Err(AppError) with the matching code and origin.
"""
from __future__ import annotations

from typing import Any

from .types import AppError, ErrorCode, ErrorContext, Err


# =============================================================================
# Validation Errors (E2xxx)
# =============================================================================

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC,
    field: str | None = None,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    """Create validation error."""
    meta = {"field": field, **metadata}
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in meta.items() if v is not None},
        cause=cause,
    ))


def field_errors(errors: list[Any], origin: str = "") -> Err[AppError]:
    """Wrap a non-empty list of FieldErrors as a single 400 error."""
    return validation_error(
        f"Validation failed: {len(errors)} errors" if len(errors) != 1 else f"{errors[0].field}: {errors[0].error}",
        origin=origin,
        error_count=len(errors),
        errors=[e.to_dict() for e in errors],
    )


def invalid_json(message: str, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return validation_error(
        f"Invalid JSON: {message}",
        code=ErrorCode.E2021_INVALID_JSON,
        origin=origin,
        cause=cause,
    )


def invalid_xml(message: str, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return validation_error(
        f"Invalid XML: {message}",
        code=ErrorCode.E2022_INVALID_XML,
        origin=origin,
        cause=cause,
    )


def invalid_form(message: str, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return validation_error(
        f"Invalid form body: {message}",
        code=ErrorCode.E2023_INVALID_FORM,
        origin=origin,
        cause=cause,
    )


def unknown_field(key: str, model: str, origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Unknown field '{key}' for {model}",
        code=ErrorCode.E2024_UNKNOWN_FIELD,
        field=key,
        origin=origin,
        model=model,
    )


def invalid_type(message: str, model: str, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return validation_error(
        message,
        code=ErrorCode.E2004_INVALID_TYPE,
        origin=origin,
        cause=cause,
        model=model,
    )


def unsupported_media_type(content_type: str, expected: str, origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Unsupported content type '{content_type}', expected {expected}",
        code=ErrorCode.E2025_UNSUPPORTED_MEDIA_TYPE,
        origin=origin,
        content_type=content_type,
    )

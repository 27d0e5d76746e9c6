"""FastAPI Integration

Dependencies that bind a request model from a chosen source, and the docs
build that turns every bound model into OpenAPI components.

Usage:
    @router.post("/users")
    async def create_user(user: Annotated[User, Depends(Bind(User, source="form"))]):
        ...

    registry = build_components(registered_models())
    openapi["components"]["schemas"].update(registry.to_openapi()["schemas"])
"""

import threading
from typing import Any, Awaitable, Callable, Generic, Iterable, Literal, TypeVar

from fastapi import Depends
from pydantic import BaseModel
from starlette.requests import Request

from webfram.errors import AppError, Ok, Result, field_errors, raise_error, raise_result, unsupported_media_type
from webfram.logging import schema_logger
from .applicability import check_model
from .binding import (
    Bound,
    bind,
    bind_cookie,
    bind_form,
    bind_header,
    bind_json,
    bind_path,
    bind_query,
    bind_xml,
)
from .schema import ComponentRegistry, generate_json_schema, generate_xml_schema

T = TypeVar("T", bound=BaseModel)

Source = Literal["auto", "body", "json", "xml", "form", "query", "header", "cookie", "path"]

_models: list[type[BaseModel]] = []
_models_lock = threading.Lock()


# ============================================================================
# Model Registration
# ============================================================================

def register_model(model: type[BaseModel]) -> None:
    """Queue a model for the docs build. Registering twice is a no-op."""
    with _models_lock:
        if model not in _models:
            _models.append(model)


def registered_models() -> list[type[BaseModel]]:
    with _models_lock:
        return list(_models)


def build_components(
    models: Iterable[type[BaseModel]],
    registry: ComponentRegistry | None = None,
    *,
    eager_check: bool = False,
) -> ComponentRegistry:
    """Generate JSON and XML components for models, then freeze the registry.

    Args:
        models: Models to document; nested records are pulled in automatically
        registry: Registry to fill (a fresh one by default)
        eager_check: Run the applicability check on every model first
    """
    registry = registry or ComponentRegistry()
    log = schema_logger()
    for model in models:
        if eager_check:
            for diagnostic in check_model(model):
                log.debug("eager_check_diagnostic", model=model.__name__, diagnostic=diagnostic)
        generate_json_schema(model, registry)
        generate_xml_schema(model, registry)
    registry.freeze()
    return registry


# ============================================================================
# Dependencies
# ============================================================================

def _content_kind(request: Request) -> str:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"): return "form"
    if content_type.endswith("json"): return "json"
    if content_type.endswith("xml"): return "xml"
    return content_type


async def _bind_path(request: Request, model: type[T]) -> Result[Bound[T], AppError]:
    return Ok(bind_path(request, model))


class Bind(Generic[T]):
    """FastAPI dependency binding and validating a request model.

    source="body" picks JSON, XML or form decoding from the Content-Type
    header; source="auto" uses the unified per-field binder.

    By default any field error aborts the request with a 400 carrying every
    error under metadata.errors. With raise_on_errors=False the dependency
    yields the Bound wrapper instead, so the handler can decide.

    Usage:
        @router.get("/users/{user_id}")
        async def get_user(params: Annotated[UserPath, Depends(Bind(UserPath, source="path"))]):
            ...
    """

    def __init__(
        self,
        model: type[T],
        *,
        source: Source = "auto",
        validate: bool = True,
        raise_on_errors: bool = True,
    ):
        self.model = model
        self.source = source
        self.validate = validate
        self.raise_on_errors = raise_on_errors
        register_model(model)

    async def __call__(self, request: Request) -> Any:
        result = await self._bind(request)
        raise_result(result)
        bound = result.unwrap()
        if bound.errors and self.raise_on_errors:
            raise_error(field_errors(bound.errors, origin=f"bind.{self.source}").unwrap_err())
        return bound.value if self.raise_on_errors else bound

    def _binder(self, source: str) -> Callable[[Request, type[T]], Awaitable[Result[Bound[T], AppError]]]:
        match source:
            case "json": return lambda r, m: bind_json(r, m, self.validate)
            case "xml": return lambda r, m: bind_xml(r, m, self.validate)
            case "form": return bind_form
            case "query": return bind_query
            case "header": return bind_header
            case "cookie": return bind_cookie
            case "path": return _bind_path
        return lambda r, m: bind(r, m, self.validate)

    async def _bind(self, request: Request) -> Result[Bound[T], AppError]:
        source: str = self.source
        if source == "body":
            source = _content_kind(request)
            if source not in ("json", "xml", "form"):
                return unsupported_media_type(
                    source or "none", "application/json, application/xml or a form", origin="bind.body"
                )
        return await self._binder(source)(request, self.model)


def bound(
    model: type[T],
    *,
    source: Source = "auto",
    validate: bool = True,
    raise_on_errors: bool = True,
) -> Any:
    """Depends(Bind(...)) shorthand.

    Usage:
        @router.post("/users")
        async def create_user(user: User = bound(User, source="json")):
            ...
    """
    return Depends(Bind(model, source=source, validate=validate, raise_on_errors=raise_on_errors))

"""Request Binding with Monadic Error Handling

Populates a bound model from one part of a starlette request and runs the
rule validator over the result.

Two failure channels, kept apart:
- Err(AppError): the payload could not be decoded into the model at all
  (malformed JSON/XML/form, unknown JSON key, wrong shape). Validation is
  skipped.
- Bound.errors: the value was built, but string conversions or rules
  failed. The populated value is always returned alongside.

String sources (form, query, path, header, cookie) convert per field kind:
bools accept true/1/yes, datetimes use the field's format= strftime layout
(ISO 8601 by default), empty values leave the zero value.

Usage:
    result = await bind_form(request, Signup)
    if result.is_err():
        raise_error(result.unwrap_err())
    bound = result.unwrap()
    if bound.errors:
        return {"errors": [e.to_dict() for e in bound.errors]}
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Iterable, TypeVar, get_args
from uuid import UUID

from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from webfram.config import get_settings
from webfram.errors import AppError, Ok, Result, invalid_form, invalid_json, invalid_type, invalid_xml, unknown_field
from webfram.logging import bind_logger
from .errors import FieldError
from .fields import BindSource, FieldDescriptor, FieldKind, describe, unwrap_annotation, classify
from .rules import find_rule
from .validation import validate as run_validation
from .xml import XMLDecodeError, decode as decode_xml

T = TypeVar("T", bound=BaseModel)

TRUE_STRINGS = frozenset({"true", "1", "yes"})
DEFAULT_TIME_LAYOUT = "ISO 8601"

_SLICE_WORDS = {
    FieldKind.STRING: "string",
    FieldKind.INTEGER: "integer",
    FieldKind.FLOAT: "float",
    FieldKind.BOOLEAN: "boolean",
    FieldKind.DATETIME: "time",
    FieldKind.UUID: "UUID",
}


@dataclass(frozen=True, slots=True)
class Bound(Generic[T]):
    """A populated model plus the field errors found while binding it."""
    value: T
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ============================================================================
# String Conversion
# ============================================================================

class ConversionError(ValueError):
    """A raw string could not be converted to the field's kind."""


def _parse_time(raw: str, layout: str | None) -> datetime:
    try:
        if layout:
            parsed = datetime.strptime(raw, layout)
        else:
            parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ConversionError(f"invalid time format, expected {layout or DEFAULT_TIME_LAYOUT}") from None
    # Zone-less input is taken as UTC
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def convert_string(kind: FieldKind, raw: str, layout: str | None = None) -> Any:
    """Convert one raw string to the Python value for kind.

    Raises:
        ConversionError: with the message reported to the client
    """
    match kind:
        case FieldKind.INTEGER:
            try: return int(raw)
            except ValueError: raise ConversionError("invalid integer") from None
        case FieldKind.FLOAT:
            try: return float(raw)
            except ValueError: raise ConversionError("invalid float") from None
        case FieldKind.BOOLEAN:
            return raw.strip().lower() in TRUE_STRINGS
        case FieldKind.DATETIME:
            return _parse_time(raw, layout)
        case FieldKind.UUID:
            try: return UUID(raw)
            except ValueError: raise ConversionError("invalid UUID") from None
    # Strings, and anything pydantic coerces itself (enums, literals, dates)
    return raw


def _layout(d: FieldDescriptor) -> str | None:
    rule = find_rule(d.rules, "format")
    return rule.arg if rule is not None and rule.arg != "email" else None


def _convert_many(d: FieldDescriptor, raws: list[str], path: str, errors: list[FieldError]) -> list[Any]:
    kind = d.elem_kind or FieldKind.STRING
    if kind is FieldKind.RECORD:
        return []
    items: list[Any] = []
    for raw in raws:
        try:
            items.append(convert_string(kind, raw, _layout(d)))
        except ConversionError:
            errors.append(FieldError(path, f"invalid {_SLICE_WORDS.get(kind, kind.value)} in slice"))
    return items


def _map_key_kind(d: FieldDescriptor) -> FieldKind:
    args = get_args(unwrap_annotation(d.annotation)[0])
    return classify(unwrap_annotation(args[0])[0]) if args else FieldKind.STRING


# ============================================================================
# String Sources
# ============================================================================

@dataclass(frozen=True, slots=True)
class StringSource:
    """Multi-valued string lookup over one part of a request."""
    kind: BindSource
    values: Callable[[str], list[str]]
    keys: Callable[[], Iterable[str]]
    name_of: Callable[[FieldDescriptor], str]
    nested: bool = False


def query_source(request: Request) -> StringSource:
    params = request.query_params
    return StringSource(BindSource.QUERY, params.getlist, params.keys, lambda d: d.query_name, nested=True)


def form_source(request: Request, form: Any) -> StringSource:
    """Form body values first, then the query string."""
    params = request.query_params

    def values(key: str) -> list[str]:
        body = [v for v in form.getlist(key) if not isinstance(v, UploadFile)]
        return body + params.getlist(key)

    def keys() -> Iterable[str]:
        return list(dict.fromkeys([*form.keys(), *params.keys()]))

    return StringSource(BindSource.FORM, values, keys, lambda d: d.form_name, nested=True)


def header_source(request: Request) -> StringSource:
    headers = request.headers
    return StringSource(BindSource.HEADER, headers.getlist, headers.keys, lambda d: d.header_name)


def cookie_source(request: Request) -> StringSource:
    cookies = request.cookies

    def values(key: str) -> list[str]:
        return [cookies[key]] if key in cookies else []

    return StringSource(BindSource.COOKIE, values, cookies.keys, lambda d: d.cookie_name)


def path_source(request: Request) -> StringSource:
    params = request.path_params

    def values(key: str) -> list[str]:
        return [str(params[key])] if key in params else []

    return StringSource(BindSource.PATH, values, params.keys, lambda d: d.path_name)


def decode_strings(
    model: type[BaseModel],
    sources: list[StringSource],
    errors: list[FieldError],
    *,
    prefix: str = "",
    path: str = "",
) -> dict[str, Any]:
    """Build a model_validate dict from string sources.

    For each field the first source (in list order) holding a value wins.
    Fields pinned with bind_from only read their own source.
    """
    data: dict[str, Any] = {}
    for d in describe(model):
        if d.form_skip:
            continue
        field_path = f"{path}.{d.wire_name}" if path else d.wire_name
        candidates = [s for s in sources if d.bind_from in (BindSource.AUTO, s.kind)]

        if d.kind is FieldKind.RECORD:
            nested = [s for s in candidates if s.nested]
            if nested and d.model is not None:
                key = _key(prefix, d.form_name)
                # Records with no keys present are left to the zero-fill
                if record := decode_strings(d.model, nested, errors, prefix=key, path=field_path):
                    data[d.wire_name] = record
            continue

        if d.kind is FieldKind.MAP:
            for source in (s for s in candidates if s.nested):
                entries = _decode_map(d, _key(prefix, source.name_of(d)), source, field_path, errors)
                if entries:
                    data[d.wire_name] = entries
                    break
            continue

        raws = _lookup(d, candidates, prefix)
        if d.kind is FieldKind.ARRAY:
            if raws:
                data[d.wire_name] = _convert_many(d, raws, field_path, errors)
            continue
        if not raws or raws[0] == "":
            continue
        try:
            data[d.wire_name] = convert_string(d.kind, raws[0], _layout(d))
        except ConversionError as e:
            errors.append(FieldError(field_path, str(e)))
    return data


def _key(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _lookup(d: FieldDescriptor, sources: list[StringSource], prefix: str) -> list[str]:
    for source in sources:
        if raws := source.values(_key(prefix, source.name_of(d))):
            return raws
    return []


def _decode_map(
    d: FieldDescriptor, key: str, source: StringSource, path: str, errors: list[FieldError]
) -> dict[Any, Any]:
    """Collect key[entry]=value pairs into a dict."""
    opening = f"{key}["
    key_kind = _map_key_kind(d)
    value_kind = d.elem_kind or FieldKind.STRING
    entries: dict[Any, Any] = {}
    for raw_key in source.keys():
        if not (raw_key.startswith(opening) and raw_key.endswith("]")):
            continue
        entry = raw_key[len(opening):-1]
        raws = source.values(raw_key)
        try:
            map_key = convert_string(key_kind, entry)
        except ConversionError as e:
            errors.append(FieldError(path, f"invalid map key '{entry}': {e}"))
            continue
        if value_kind is FieldKind.RECORD or not raws:
            continue
        try:
            entries[map_key] = convert_string(value_kind, raws[0], _layout(d))
        except ConversionError as e:
            errors.append(FieldError(path, f"invalid map value for key '{entry}': {e}"))
    return entries


def _format_loc(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for part in loc:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}" if parts else str(part))
    return "".join(parts)


def build_value(model: type[T], data: dict[str, Any], errors: list[FieldError]) -> T:
    """Validate converted strings into model, recording pydantic rejections as field errors.

    Fields pydantic rejects fall back to their zero value so a value is
    always returned.
    """
    rejected: set[Any] = set()
    try:
        return model.model_validate(data)
    except ValidationError as e:
        for err in e.errors():
            errors.append(FieldError(_format_loc(err["loc"]), err["msg"]))
            if err["loc"]:
                rejected.add(err["loc"][0])
    try:
        return model.model_validate({k: v for k, v in data.items() if k not in rejected})
    except ValidationError:
        return model.model_construct()


def _bind_strings(model: type[T], sources: list[StringSource], validate: bool = True) -> Bound[T]:
    errors: list[FieldError] = []
    value = build_value(model, decode_strings(model, sources, errors), errors)
    if validate:
        errors.extend(run_validation(value))
    return Bound(value, errors)


# ============================================================================
# Body Decoding
# ============================================================================

def _known_keys(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys the model does not declare, recursively."""
    kept: dict[str, Any] = {}
    for d in describe(model):
        key = d.wire_name if d.wire_name in data else d.name
        if key not in data:
            continue
        value = data[key]
        if d.model is not None and d.kind is FieldKind.RECORD and isinstance(value, dict):
            value = _known_keys(d.model, value)
        elif d.model is not None and d.kind is FieldKind.ARRAY and isinstance(value, list):
            value = [_known_keys(d.model, v) if isinstance(v, dict) else v for v in value]
        kept[key] = value
    return kept


_JSON_TYPES: dict[FieldKind, tuple[type, ...]] = {
    FieldKind.STRING: (str,),
    FieldKind.DATETIME: (str,),
    FieldKind.UUID: (str,),
    FieldKind.BOOLEAN: (bool,),
    FieldKind.INTEGER: (int,),
    FieldKind.FLOAT: (int, float),
    FieldKind.ARRAY: (list,),
    FieldKind.MAP: (dict,),
    FieldKind.RECORD: (dict,),
}


def _json_type(value: Any) -> str:
    match value:
        case bool(): return "boolean"
        case int() | float(): return "number"
        case str(): return "string"
        case list(): return "array"
        case dict(): return "object"
    return type(value).__name__


def _json_value_mismatch(d: FieldDescriptor, kind: FieldKind, value: Any, loc: str) -> str | None:
    if value is None or kind is FieldKind.ANY: return None
    expected = _JSON_TYPES[kind]
    # bool is an int subclass, but JSON true is never a number
    if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
        return f"{loc}: cannot decode JSON {_json_type(value)} into {kind.value}"
    match kind:
        case FieldKind.RECORD if d.model is not None:
            return json_type_mismatch(d.model, value, loc + ".")
        case FieldKind.ARRAY if kind is d.kind and d.elem_kind is not None:
            for i, item in enumerate(value):
                if reason := _json_value_mismatch(d, d.elem_kind, item, f"{loc}[{i}]"):
                    return reason
        case FieldKind.MAP if kind is d.kind and d.elem_kind is not None:
            for key, item in value.items():
                if reason := _json_value_mismatch(d, d.elem_kind, item, f"{loc}[{key}]"):
                    return reason
    return None


def json_type_mismatch(model: type[BaseModel], data: dict[str, Any], prefix: str = "") -> str | None:
    """First field whose JSON value has the wrong type for its kind, or None.

    JSON decoding does not coerce: "12" never becomes an integer and 1.5
    never becomes one either. Datetimes and UUIDs must arrive as strings.
    """
    for d in describe(model):
        key = d.wire_name if d.wire_name in data else d.name
        if key in data and (reason := _json_value_mismatch(d, d.kind, data[key], prefix + d.wire_name)):
            return reason
    return None


def _shape_failure(e: ValidationError, model: type[BaseModel], origin: str) -> Result[Any, AppError]:
    errs = e.errors()
    for err in errs:
        if err["type"] == "extra_forbidden":
            return unknown_field(_format_loc(err["loc"]), model.__name__, origin=origin)
    first = errs[0]
    return invalid_type(
        f"{_format_loc(first['loc']) or model.__name__}: {first['msg']}",
        model=model.__name__,
        origin=origin,
        cause=e,
    )


def _decode_body(
    data: Any, model: type[T], origin: str, validate: bool, strict: bool = True, json_types: bool = False
) -> Result[Bound[T], AppError]:
    if not isinstance(data, dict):
        return invalid_type(f"expected an object for {model.__name__}", model=model.__name__, origin=origin)
    if json_types and (reason := json_type_mismatch(model, data)):
        bind_logger().info("bind_decode_failed", model=model.__name__, origin=origin, reason=reason)
        return invalid_type(reason, model=model.__name__, origin=origin)
    if not strict:
        data = _known_keys(model, data)
    try:
        value = model.model_validate(data)
    except ValidationError as e:
        bind_logger().info("bind_decode_failed", model=model.__name__, origin=origin, error_count=e.error_count())
        return _shape_failure(e, model, origin)
    return Ok(Bound(value, run_validation(value) if validate else []))


# ============================================================================
# Entry Points
# ============================================================================

async def bind_json(
    request: Request, model: type[T], validate: bool = True, *, strict: bool | None = None
) -> Result[Bound[T], AppError]:
    """Decode a JSON object body into model and validate it.

    Args:
        strict: Reject unknown keys (defaults to BIND_STRICT_JSON)
    """
    body = await request.body()
    try:
        data = json.loads(body)
    except ValueError as e:
        bind_logger().info("bind_decode_failed", model=model.__name__, origin="bind.json", reason=str(e))
        return invalid_json(str(e), origin="bind.json", cause=e)
    if strict is None:
        strict = get_settings().BIND_STRICT_JSON
    return _decode_body(data, model, "bind.json", validate, strict, json_types=True)


async def bind_xml(request: Request, model: type[T], validate: bool = True) -> Result[Bound[T], AppError]:
    """Decode an XML document body into model and validate it."""
    body = await request.body()
    try:
        data = decode_xml(body, model)
    except XMLDecodeError as e:
        bind_logger().info("bind_decode_failed", model=model.__name__, origin="bind.xml", reason=str(e))
        return invalid_xml(str(e), origin="bind.xml", cause=e)
    return _decode_body(data, model, "bind.xml", validate)


async def bind_form(request: Request, model: type[T]) -> Result[Bound[T], AppError]:
    """Bind from a urlencoded or multipart body, falling back to the query string."""
    try:
        form = await request.form()
    except (MultiPartException, HTTPException) as e:
        reason = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
        bind_logger().info("bind_decode_failed", model=model.__name__, origin="bind.form", reason=reason)
        return invalid_form(str(reason), origin="bind.form", cause=e)
    return Ok(_bind_strings(model, [form_source(request, form)]))


async def bind_query(request: Request, model: type[T]) -> Result[Bound[T], AppError]:
    """Bind from the query string."""
    return Ok(_bind_strings(model, [query_source(request)]))


def bind_path(request: Request, model: type[T]) -> Bound[T]:
    """Bind from path parameters. Path values are already parsed by routing, so this never fails."""
    return _bind_strings(model, [path_source(request)])


async def bind_header(request: Request, model: type[T]) -> Result[Bound[T], AppError]:
    """Bind from request headers. Header names match case-insensitively."""
    return Ok(_bind_strings(model, [header_source(request)]))


async def bind_cookie(request: Request, model: type[T]) -> Result[Bound[T], AppError]:
    """Bind from request cookies."""
    return Ok(_bind_strings(model, [cookie_source(request)]))


def _is_form(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data"))


def _is_json(request: Request) -> bool:
    return "json" in request.headers.get("content-type", "")


async def bind(request: Request, model: type[T], validate: bool = True) -> Result[Bound[T], AppError]:
    """Bind each field from its own source, then validate once.

    Unpinned fields take the first value found in path, query, header,
    cookie, form (in that order). Fields with bind_from="body" read the
    same-named key of a JSON object body.
    """
    sources = [path_source(request), query_source(request), header_source(request), cookie_source(request)]
    if _is_form(request):
        try:
            form = await request.form()
        except (MultiPartException, HTTPException) as e:
            reason = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
            return invalid_form(str(reason), origin="bind", cause=e)
        sources.append(form_source(request, form))

    errors: list[FieldError] = []
    data = decode_strings(model, sources, errors)

    body_fields = [d for d in describe(model) if d.bind_from is BindSource.BODY]
    if body_fields and _is_json(request):
        raw = await request.body()
        try:
            payload = json.loads(raw) if raw else {}
        except ValueError as e:
            return invalid_json(str(e), origin="bind", cause=e)
        if isinstance(payload, dict):
            for d in body_fields:
                key = d.wire_name if d.wire_name in payload else d.name
                if key in payload:
                    if reason := _json_value_mismatch(d, d.kind, payload[key], d.wire_name):
                        return invalid_type(reason, model=model.__name__, origin="bind")
                    data[d.wire_name] = payload[key]

    value = build_value(model, data, errors)
    if validate:
        errors.extend(run_validation(value))
    return Ok(Bound(value, errors))

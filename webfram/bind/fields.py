"""Bindable Models and Field Descriptors

Declares request models and discovers their per-field metadata once per
class. Rule annotations ride on pydantic's json_schema_extra under x-*
keys, so one declaration drives binding, validation and documentation.

Usage:
    from webfram.bind import BindModel, Field

    class Address(BindModel):
        street: str = Field(validate="required", form="street")
        zip: int = Field(validate="min=10000,max=99999")

    class User(BindModel):
        name: str = Field(validate="required,minlength=3",
                          errmsg="required=Name is required", form="name")
        role: str = Field(validate="enum=admin|user|guest")
        tags: list[str] = Field(validate="maxItems=5,uniqueItems")
        address: Address
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from types import MappingProxyType, NoneType, UnionType
from typing import Annotated, Any, Mapping, Union, get_args, get_origin
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field as PydanticField, model_validator
from pydantic.fields import FieldInfo

from .rules import Rule, parse_messages, parse_rules

# Go-style zero values for the special kinds.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
NIL_UUID = UUID(int=0)

_NO_MESSAGES: Mapping[str, str] = MappingProxyType({})


class FieldKind(str, Enum):
    """Closed set of field shapes the engine dispatches on."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ARRAY = "array"
    MAP = "map"
    RECORD = "record"
    DATETIME = "datetime"
    UUID = "uuid"
    ANY = "any"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.FLOAT)

    @property
    def is_special(self) -> bool:
        """Kinds that are structs in spirit but validated as scalars."""
        return self in (FieldKind.DATETIME, FieldKind.UUID)


class BindSource(str, Enum):
    """Where the unified binder reads a field from."""
    AUTO = "auto"
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"
    FORM = "form"
    BODY = "body"


def Field(
    default: Any = ...,
    *,
    validate: str | None = None,
    errmsg: str | None = None,
    form: str | None = None,
    query: str | None = None,
    header: str | None = None,
    cookie: str | None = None,
    path: str | None = None,
    xml: str | None = None,
    bind_from: BindSource | str | None = None,
    description: str | None = None,
    examples: list[Any] | None = None,
    **kwargs,
) -> Any:
    """pydantic Field carrying bind annotations as x-* schema extensions.

    Args:
        default: Default value or ... for none (missing keys then bind to the zero value)
        validate: Rule annotation, e.g. "required,min=0,max=120"
        errmsg: Custom messages, e.g. "required=Age is required;min=Too young"
        form: Form key (also the fallback for query/header/cookie/path names)
        query: Query parameter name override
        header: Header name override
        cookie: Cookie name override
        path: Path parameter name override
        xml: XML placement, "name" or "name,attr"; "-" skips the field
        bind_from: Source for the unified binder (auto, path, query, header, cookie, form, body)
        description: Human-readable field description
        examples: Example values for documentation
    """
    schema_extra: dict[str, Any] = {}
    if validate:
        schema_extra["x-validate"] = validate
    if errmsg:
        schema_extra["x-errmsg"] = errmsg
    if form:
        schema_extra["x-form"] = form
    if query:
        schema_extra["x-query"] = query
    if header:
        schema_extra["x-header"] = header
    if cookie:
        schema_extra["x-cookie"] = cookie
    if path:
        schema_extra["x-path"] = path
    if xml:
        schema_extra["x-xml"] = xml
    if bind_from:
        schema_extra["x-bind-from"] = BindSource(bind_from).value

    pydantic_kwargs: dict[str, Any] = {"default": default}
    if "default_factory" in kwargs:
        pydantic_kwargs.pop("default")
    if description:
        pydantic_kwargs["description"] = description
    if examples:
        pydantic_kwargs["examples"] = examples
    if schema_extra:
        pydantic_kwargs["json_schema_extra"] = schema_extra

    pydantic_kwargs.update(kwargs)
    return PydanticField(**pydantic_kwargs)


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Cached metadata for one field of a bound model."""
    name: str
    wire_name: str
    kind: FieldKind
    annotation: Any
    elem_kind: FieldKind | None = None
    elem_type: Any = None
    model: type[BaseModel] | None = None
    rules: tuple[Rule, ...] = ()
    messages: Mapping[str, str] = field(default_factory=lambda: _NO_MESSAGES)
    optional: bool = False
    has_default: bool = False
    form_name: str = ""
    query_name: str = ""
    header_name: str = ""
    cookie_name: str = ""
    path_name: str = ""
    xml_name: str = ""
    xml_attr: bool = False
    xml_skip: bool = False
    form_skip: bool = False
    bind_from: BindSource = BindSource.AUTO
    description: str | None = None

    @property
    def type_label(self) -> str:
        """Kind label used in diagnostics, e.g. 'array of string'."""
        if self.kind is FieldKind.ARRAY and self.elem_kind is not None:
            return f"array of {self.elem_kind.value}"
        return self.kind.value


# ============================================================================
# Kind Discovery
# ============================================================================

def unwrap_annotation(annotation: Any) -> tuple[Any, bool]:
    """Strip Annotated and Optional wrappers. Returns (inner type, optional)."""
    optional = False
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
            continue
        if origin in (Union, UnionType):
            args = get_args(annotation)
            non_none = [a for a in args if a is not NoneType]
            optional = optional or len(non_none) < len(args)
            if len(non_none) == 1:
                annotation = non_none[0]
                continue
        return annotation, optional


def classify(annotation: Any) -> FieldKind:
    """Map an unwrapped annotation to its FieldKind."""
    origin = get_origin(annotation)
    if origin in (list, tuple, set, frozenset): return FieldKind.ARRAY
    if origin is dict: return FieldKind.MAP
    if not isinstance(annotation, type): return FieldKind.ANY
    # bool before int, datetime and UUID before the generic checks
    if issubclass(annotation, bool): return FieldKind.BOOLEAN
    if issubclass(annotation, datetime): return FieldKind.DATETIME
    if issubclass(annotation, UUID): return FieldKind.UUID
    if issubclass(annotation, str): return FieldKind.STRING
    if issubclass(annotation, int): return FieldKind.INTEGER
    if issubclass(annotation, float): return FieldKind.FLOAT
    if issubclass(annotation, BaseModel): return FieldKind.RECORD
    if annotation in (list, tuple, set, frozenset): return FieldKind.ARRAY
    if annotation is dict: return FieldKind.MAP
    return FieldKind.ANY


def element_type(annotation: Any, kind: FieldKind) -> Any:
    """Element type of an array, value type of a map, else None."""
    args = get_args(annotation)
    if kind is FieldKind.ARRAY and args:
        return unwrap_annotation(args[0])[0]
    if kind is FieldKind.MAP and len(args) == 2:
        return unwrap_annotation(args[1])[0]
    return None


def _parse_xml_option(raw: str | None, default_name: str) -> tuple[str, bool, bool]:
    """Parse "name[,attr]" into (name, is_attr, skip)."""
    if raw is None: return default_name, False, False
    if raw == "-": return "", False, True
    name, _, opts = raw.partition(",")
    return name or default_name, "attr" in opts.split(","), False


def _describe_field(name: str, info: FieldInfo) -> FieldDescriptor:
    annotation, optional = unwrap_annotation(info.annotation)
    kind = classify(annotation)
    elem = element_type(annotation, kind)
    elem_kind = classify(elem) if elem is not None else None

    nested = None
    if kind is FieldKind.RECORD:
        nested = annotation
    elif elem_kind is FieldKind.RECORD:
        nested = elem

    extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
    wire_name = info.alias or name
    form_raw = extra.get("x-form")
    form_name = form_raw if form_raw and form_raw != "-" else wire_name
    xml_name, xml_attr, xml_skip = _parse_xml_option(extra.get("x-xml"), wire_name)

    return FieldDescriptor(
        name=name,
        wire_name=wire_name,
        kind=kind,
        annotation=info.annotation,
        elem_kind=elem_kind,
        elem_type=elem,
        model=nested,
        rules=parse_rules(extra.get("x-validate")),
        messages=parse_messages(extra.get("x-errmsg")),
        optional=optional,
        has_default=not info.is_required(),
        form_name=form_name,
        query_name=extra.get("x-query") or form_name,
        header_name=extra.get("x-header") or form_name,
        cookie_name=extra.get("x-cookie") or form_name,
        path_name=extra.get("x-path") or form_name,
        xml_name=xml_name,
        xml_attr=xml_attr,
        xml_skip=xml_skip,
        form_skip=form_raw == "-",
        bind_from=BindSource(extra.get("x-bind-from", BindSource.AUTO.value)),
        description=info.description,
    )


@lru_cache(maxsize=None)
def describe(model: type[BaseModel]) -> tuple[FieldDescriptor, ...]:
    """Field descriptors for a model, in declaration order. Cached per class."""
    return tuple(_describe_field(name, info) for name, info in model.model_fields.items())


# ============================================================================
# Zero Values
# ============================================================================

_ZEROS: dict[FieldKind, Any] = {
    FieldKind.STRING: "",
    FieldKind.INTEGER: 0,
    FieldKind.FLOAT: 0.0,
    FieldKind.BOOLEAN: False,
    FieldKind.DATETIME: ZERO_TIME,
    FieldKind.UUID: NIL_UUID,
    FieldKind.ANY: None,
}


def zero_value(descriptor: FieldDescriptor) -> Any:
    """Value a missing key decodes to. Containers get fresh instances."""
    if descriptor.optional: return None
    if descriptor.kind is FieldKind.ARRAY: return []
    if descriptor.kind in (FieldKind.MAP, FieldKind.RECORD): return {}
    return _ZEROS[descriptor.kind]


def with_zero_values(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Copy of data with every missing required key set to its zero value."""
    filled = dict(data)
    for d in describe(model):
        if d.has_default or d.wire_name in filled or d.name in filled:
            continue
        # Types without a known zero value stay required
        if d.kind is FieldKind.ANY and not d.optional:
            continue
        filled[d.wire_name] = zero_value(d)
    return filled


class BindModel(BaseModel):
    """Base class for bindable request models.

    Missing keys decode to their kind's zero value instead of failing, so
    emptiness is reported by the 'required' rule rather than by pydantic.
    Unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def fill_zero_values(cls, data: Any) -> Any:
        if not isinstance(data, dict): return data
        return with_zero_values(cls, data)

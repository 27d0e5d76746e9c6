"""Declarative Field Binding and Validation

Request models declare their rules once, on the field:

    class User(BindModel):
        name: str = Field(validate="required,minlength=3", form="name")
        age: int = Field(validate="min=0,max=120")

and that declaration drives three things:
- binding: populate the model from a form, JSON, XML, query, path, header
  or cookie source (bind_* entry points, Bind dependency)
- validation: validate(value) walks the model and returns FieldErrors
- documentation: generate_json_schema / generate_xml_schema register
  OpenAPI components in a ComponentRegistry

Misapplied rules never fail a request; they are logged once and skipped.
"""
from .rules import Rule, parse_rules, parse_messages, resolve_message
from .fields import (
    BindModel,
    BindSource,
    Field,
    FieldDescriptor,
    FieldKind,
    describe,
    zero_value,
)
from .errors import FieldError
from .applicability import check, check_model
from .validation import validate, is_zero
from .schema import (
    ComponentRegistry,
    Reference,
    SchemaNode,
    XMLObject,
    generate_json_schema,
    generate_xml_schema,
    type_name,
)
from .xml import XMLDecodeError, encode, encode_many, decode
from .binding import (
    Bound,
    ConversionError,
    bind,
    bind_cookie,
    bind_form,
    bind_header,
    bind_json,
    bind_path,
    bind_query,
    bind_xml,
    convert_string,
)
from .dependencies import Bind, bound, build_components, register_model, registered_models

__all__ = [
    "Rule",
    "parse_rules",
    "parse_messages",
    "resolve_message",
    "BindModel",
    "BindSource",
    "Field",
    "FieldDescriptor",
    "FieldKind",
    "describe",
    "zero_value",
    "FieldError",
    "check",
    "check_model",
    "validate",
    "is_zero",
    "ComponentRegistry",
    "Reference",
    "SchemaNode",
    "XMLObject",
    "generate_json_schema",
    "generate_xml_schema",
    "type_name",
    "XMLDecodeError",
    "encode",
    "encode_many",
    "decode",
    "Bound",
    "ConversionError",
    "bind",
    "bind_cookie",
    "bind_form",
    "bind_header",
    "bind_json",
    "bind_path",
    "bind_query",
    "bind_xml",
    "convert_string",
    "Bind",
    "bound",
    "build_components",
    "register_model",
    "registered_models",
]

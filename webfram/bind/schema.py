"""OpenAPI Schema Derivation from Bind Annotations

Generates OpenAPI schema nodes from the same x-validate annotations the
validator enforces, so published documentation and runtime checks share
one source of truth.

Features:
- Records become named components, registered once and referenced after
- Self-referential records terminate (the name is reserved before properties)
- Rules translate to constraints (minLength, pattern, enum, minimum, ...)
- Two dialects: plain JSON, and XML with element/attribute placement and a
  mock-data example per component

Usage:
    registry = ComponentRegistry()
    ref = generate_json_schema(User, registry)       # Reference("#/components/schemas/app.User")
    xml_ref = generate_xml_schema(User, registry)    # Reference(".../app.User.XML")
    registry.freeze()
    openapi["components"] = registry.to_openapi()
"""
from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Literal, Mapping
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field as PydanticField, ValidationError
from pydantic.alias_generators import to_camel

from webfram.logging import schema_logger

from .fields import FieldDescriptor, FieldKind, classify, describe, element_type, unwrap_annotation
from .rules import Rule, has_rule
from .xml import encode, encode_many

log = schema_logger()

COMPONENTS_PREFIX = "#/components/schemas/"
XML_SUFFIX = ".XML"

MOCK_STRING = "example"
MOCK_INT = 42
MOCK_FLOAT = 3.14
MOCK_TIME = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
MOCK_UUID = UUID("550e8400-e29b-41d4-a716-446655440000")

_DATE_DIRECTIVES = frozenset("aAwdbBmyYjUWxGuV")
_TIME_DIRECTIVES = frozenset("HIpMSfzZX")

_ELEMENT_RULES = frozenset({"min", "max", "multipleOf", "minlength", "maxlength", "pattern", "format", "enum"})


# ============================================================================
# Schema Objects
# ============================================================================

class XMLObject(BaseModel):
    """OpenAPI XML object (nodeType style)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str | None = None
    node_type: Literal["element", "attribute", "text", "cdata", "none"] | None = None
    namespace: str | None = None
    prefix: str | None = None


class Reference(BaseModel):
    """$ref into the shared component table."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ref: str = PydanticField(alias="$ref")

    @property
    def name(self) -> str:
        return self.ref.removeprefix(COMPONENTS_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SchemaNode(BaseModel):
    """Structural description of a type or field."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str | None = None
    format: str | None = None
    title: str | None = None
    description: str | None = None
    nullable: bool | None = None
    default: Any = None
    example: Any = None
    enum: list[Any] | None = None
    properties: dict[str, SchemaNode | Reference] | None = None
    required: list[str] | None = None
    items: SchemaNode | Reference | None = None
    additional_properties: SchemaNode | Reference | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    exclusive_minimum: int | float | None = None
    exclusive_maximum: int | float | None = None
    multiple_of: int | float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool | None = None
    min_properties: int | None = None
    max_properties: int | None = None
    xml: XMLObject | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


SchemaOrRef = SchemaNode | Reference
SchemaNode.model_rebuild()


# ============================================================================
# Component Registry
# ============================================================================

class ComponentRegistry:
    """Named schema components, written during the docs build then frozen.

    A name is registered at most once; later encounters of the same type
    resolve to a Reference. Writes take a lock; reads never do. After
    freeze() any write raises RuntimeError.
    """

    __slots__ = ("_schemas", "_lock", "_frozen")

    def __init__(self) -> None:
        self._schemas: dict[str, SchemaNode] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def __contains__(self, name: str) -> bool: return name in self._schemas
    def __len__(self) -> int: return len(self._schemas)

    def get(self, name: str) -> SchemaNode | None: return self._schemas.get(name)

    @property
    def schemas(self) -> Mapping[str, SchemaNode]:
        return MappingProxyType(self._schemas)

    @property
    def frozen(self) -> bool: return self._frozen

    def reserve(self, name: str) -> bool:
        """Claim name with a placeholder. False if it is already taken."""
        with self._lock:
            self._ensure_writable(name)
            if name in self._schemas: return False
            self._schemas[name] = SchemaNode(type="object", title=name)
            return True

    def put(self, name: str, node: SchemaNode) -> None:
        with self._lock:
            self._ensure_writable(name)
            self._schemas[name] = node
        log.debug("schema_component_registered", component=name)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True
        log.info("schema_registry_frozen", components=len(self._schemas))

    def to_openapi(self) -> dict[str, Any]:
        """The components section: {"schemas": {name: node}}."""
        return {"schemas": {name: node.to_dict() for name, node in sorted(self._schemas.items())}}

    def _ensure_writable(self, name: str) -> None:
        if self._frozen:
            raise RuntimeError(f"component registry is frozen; cannot register '{name}'")


def type_name(model: type) -> str:
    """Stable component name: module plus qualified class name."""
    qualname = model.__qualname__.replace("<locals>.", "")
    return re.sub(r"[^A-Za-z0-9._-]", "_", f"{model.__module__}.{qualname}")


def ref_to(name: str) -> Reference:
    return Reference(ref=COMPONENTS_PREFIX + name)


# ============================================================================
# Rule Translation
# ============================================================================

def _number(kind: FieldKind, raw: str | None) -> int | float | None:
    if raw is None: return None
    try:
        return int(raw) if kind is FieldKind.INTEGER else float(raw)
    except ValueError:
        return None


def _count(raw: str | None) -> int | None:
    if raw is None: return None
    try: return int(raw)
    except ValueError: return None


def time_format(layout: str | None) -> str:
    """OpenAPI format for a strftime layout: date, time, or date-time."""
    if not layout: return "date-time"
    directives = set(re.findall(r"%([A-Za-z])", layout))
    has_date, has_time = bool(directives & _DATE_DIRECTIVES), bool(directives & _TIME_DIRECTIVES)
    if has_date and not has_time: return "date"
    if has_time and not has_date: return "time"
    return "date-time"


def apply_scalar_rules(node: SchemaNode, kind: FieldKind, rules: tuple[Rule, ...]) -> None:
    """Copy scalar rules onto node as constraints. Unparsable args are skipped."""
    for rule in rules:
        match rule.name:
            case "minlength" if kind is FieldKind.STRING:
                node.min_length = _count(rule.arg)
            case "maxlength" if kind is FieldKind.STRING:
                node.max_length = _count(rule.arg)
            case "pattern" if kind is FieldKind.STRING:
                node.pattern = rule.arg
            case "format" if kind is FieldKind.STRING and rule.arg:
                node.format = rule.arg
            case "min" if kind.is_numeric:
                node.minimum = _number(kind, rule.arg)
            case "max" if kind.is_numeric:
                node.maximum = _number(kind, rule.arg)
            case "multipleOf" if kind.is_numeric:
                node.multiple_of = _number(kind, rule.arg) or None
            case "enum" if kind is FieldKind.STRING:
                node.enum = list(rule.values)
            case "enum" if kind.is_numeric:
                node.enum = [v for v in (_number(kind, lit) for lit in rule.values) if v is not None]


def apply_collection_rules(node: SchemaNode, kind: FieldKind, rules: tuple[Rule, ...]) -> None:
    for rule in rules:
        match rule.name:
            case "minItems" if kind is FieldKind.ARRAY:
                node.min_items = _count(rule.arg)
            case "maxItems" if kind is FieldKind.ARRAY:
                node.max_items = _count(rule.arg)
            case "uniqueItems" if kind is FieldKind.ARRAY:
                node.unique_items = True
            case "minItems" if kind is FieldKind.MAP:
                node.min_properties = _count(rule.arg)
            case "maxItems" if kind is FieldKind.MAP:
                node.max_properties = _count(rule.arg)


# ============================================================================
# Generators
# ============================================================================

class _Generator:
    """Walks annotations in one dialect, writing records into a registry."""

    def __init__(self, registry: ComponentRegistry, *, xml: bool = False):
        self.registry = registry
        self.xml = xml

    def component_name(self, model: type[BaseModel]) -> str:
        return type_name(model) + (XML_SUFFIX if self.xml else "")

    def record(self, model: type[BaseModel], root_name: str | None = None) -> Reference:
        name = self.component_name(model)
        if name in self.registry or not self.registry.reserve(name):
            return ref_to(name)

        properties: dict[str, SchemaOrRef] = {}
        required: list[str] = []
        for d in describe(model):
            if self.xml and d.xml_skip:
                continue
            key = d.xml_name if self.xml else d.wire_name
            properties[key] = self.field(d)
            if has_rule(d.rules, "required"):
                required.append(key)

        node = SchemaNode(
            type="object",
            title=name,
            description=model.__doc__.strip() if model.__doc__ else None,
            properties=properties,
            required=required or None,
        )
        if self.xml:
            node.xml = XMLObject(name=root_name or model.__name__, node_type="element")
            node.example = xml_example(model, root_name)
        self.registry.put(name, node)
        return ref_to(name)

    def field(self, d: FieldDescriptor) -> SchemaOrRef:
        schema = self.annotation(d.annotation, d.rules)
        if isinstance(schema, SchemaNode):
            if d.description:
                schema.description = d.description
            if self.xml:
                node_type = "attribute" if d.xml_attr else "element"
                schema.xml = XMLObject(name=d.xml_name, node_type=node_type)
                if isinstance(schema.items, SchemaNode):
                    schema.items.xml = XMLObject(name=d.xml_name, node_type="element")
        return schema

    def annotation(self, annotation: Any, rules: tuple[Rule, ...] = ()) -> SchemaOrRef:
        inner, optional = unwrap_annotation(annotation)
        kind = classify(inner)

        if kind is FieldKind.RECORD:
            return self.record(inner)

        if kind in (FieldKind.ARRAY, FieldKind.MAP):
            elem = element_type(inner, kind)
            elem_rules = tuple(r for r in rules if r.name in _ELEMENT_RULES)
            child = self.annotation(elem, elem_rules) if elem is not None else SchemaNode()
            node = (SchemaNode(type="array", items=child) if kind is FieldKind.ARRAY
                    else SchemaNode(type="object", additional_properties=child))
            apply_collection_rules(node, kind, rules)
        else:
            node = self.scalar(kind, rules)

        if optional:
            node.nullable = True
        return node

    def scalar(self, kind: FieldKind, rules: tuple[Rule, ...]) -> SchemaNode:
        match kind:
            case FieldKind.STRING:
                node = SchemaNode(type="string")
            case FieldKind.INTEGER:
                node = SchemaNode(type="integer", format="int64")
            case FieldKind.FLOAT:
                node = SchemaNode(type="number", format="double")
            case FieldKind.BOOLEAN:
                node = SchemaNode(type="boolean")
            case FieldKind.DATETIME:
                layout = next((r.arg for r in rules if r.name == "format"), None)
                return SchemaNode(type="string", format=time_format(layout))
            case FieldKind.UUID:
                return SchemaNode(type="string", format="uuid")
            case _:
                return SchemaNode()
        apply_scalar_rules(node, kind, rules)
        return node


def generate_json_schema(target: Any, registry: ComponentRegistry) -> SchemaOrRef:
    """Schema for a model or annotation in the JSON dialect."""
    return _Generator(registry).annotation(target)


def generate_xml_schema(target: Any, registry: ComponentRegistry, root_name: str | None = None) -> SchemaOrRef:
    """Schema for a model or annotation in the XML dialect.

    Records register as "<name>.XML" with element/attribute placement on
    every property. A top-level list becomes an inline array wrapped in
    root_name, or in the pluralised lowercase element name.
    """
    gen = _Generator(registry, xml=True)
    inner, _ = unwrap_annotation(target)
    kind = classify(inner)

    if kind is FieldKind.RECORD:
        return gen.record(inner, root_name)

    if kind is FieldKind.ARRAY:
        elem = element_type(inner, kind)
        elem_is_record = elem is not None and classify(elem) is FieldKind.RECORD
        wrapper = root_name or (elem.__name__.lower() + "s" if elem_is_record else "items")
        node = SchemaNode(
            type="array",
            items=gen.annotation(elem) if elem is not None else SchemaNode(),
            xml=XMLObject(name=wrapper, node_type="element"),
        )
        if elem_is_record:
            try:
                node.example = encode_many([mock_instance(elem)], wrapper, indent=True)
            except ValidationError as e:
                log.warning("schema_example_skipped", model=elem.__name__, errors=e.error_count())
        return node

    node = gen.annotation(inner)
    if isinstance(node, SchemaNode):
        node.example = mock_data(inner)
    return node


# ============================================================================
# Mock Data and Examples
# ============================================================================

def mock_data(annotation: Any, _stack: tuple[type, ...] = ()) -> Any:
    """Representative value for an annotation, used in documentation examples."""
    inner, optional = unwrap_annotation(annotation)
    kind = classify(inner)
    match kind:
        case FieldKind.STRING: return MOCK_STRING
        case FieldKind.INTEGER: return MOCK_INT
        case FieldKind.FLOAT: return MOCK_FLOAT
        case FieldKind.BOOLEAN: return True
        case FieldKind.DATETIME: return MOCK_TIME
        case FieldKind.UUID: return MOCK_UUID
        case FieldKind.ARRAY:
            elem = element_type(inner, kind)
            if elem is None or elem in _stack: return []
            return [mock_data(elem, _stack)]
        case FieldKind.MAP:
            elem = element_type(inner, kind)
            if elem is None or elem in _stack: return {}
            return {"key": mock_data(elem, _stack)}
        case FieldKind.RECORD:
            if inner in _stack: return None if optional else {}
            return {d.wire_name: mock_data(d.annotation, (*_stack, inner)) for d in describe(inner)}
    return None


def mock_instance(model: type[BaseModel]) -> BaseModel:
    data = mock_data(model)
    return model.model_validate({k: v for k, v in data.items() if v is not None})


def xml_example(model: type[BaseModel], root_name: str | None = None) -> str | None:
    """Indented XML document built from mock data, or None if the model rejects it."""
    try:
        return encode(mock_instance(model), root_name, indent=True)
    except ValidationError as e:
        log.warning("schema_example_skipped", model=model.__name__, errors=e.error_count())
        return None

"""XML Codec for Bound Models

Maps models to and from XML using the per-field xml= option:

    id: int = Field(xml="id,attr")      ->  <User id="7">
    name: str = Field(xml="name")       ->    <name>Ada</name>
    tags: list[str]                     ->    <tags>a</tags><tags>b</tags>
    meta: dict[str, str]                ->    <meta><entry key="k">v</entry></meta>

Decoding produces a plain dict for model_validate, so missing elements fall
back to zero values and pydantic performs scalar coercion. Unknown elements
are ignored.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .fields import FieldDescriptor, FieldKind, describe

MAP_ENTRY_TAG = "entry"
MAP_KEY_ATTR = "key"


class XMLDecodeError(ValueError):
    """Raised when a payload is not well-formed XML."""


# ============================================================================
# Encoding
# ============================================================================

def format_scalar(value: Any) -> str:
    """Text form of a scalar, matching what decoding accepts."""
    if isinstance(value, bool): return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is not None and value.utcoffset().total_seconds() == 0:
            return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
        return value.isoformat()
    if isinstance(value, Enum): return str(value.value)
    return str(value)


def to_element(instance: BaseModel, tag: str | None = None) -> ET.Element:
    """Build the element tree for a model instance."""
    element = ET.Element(tag or type(instance).__name__)
    _fill_element(element, instance)
    return element


def _fill_element(element: ET.Element, instance: BaseModel) -> None:
    for d in describe(type(instance)):
        if d.xml_skip:
            continue
        value = getattr(instance, d.name, None)
        if value is None:
            continue
        if d.xml_attr:
            element.set(d.xml_name, format_scalar(value))
        elif d.kind is FieldKind.ARRAY:
            for item in value:
                _append_value(element, d.xml_name, item)
        elif d.kind is FieldKind.MAP:
            container = ET.SubElement(element, d.xml_name)
            for key, item in value.items():
                entry = _append_value(container, MAP_ENTRY_TAG, item)
                entry.set(MAP_KEY_ATTR, format_scalar(key))
        else:
            _append_value(element, d.xml_name, value)


def _append_value(parent: ET.Element, tag: str, value: Any) -> ET.Element:
    child = ET.SubElement(parent, tag)
    if isinstance(value, BaseModel):
        _fill_element(child, value)
    elif value is not None:
        child.text = format_scalar(value)
    return child


def encode(instance: BaseModel, root: str | None = None, *, indent: bool = False) -> str:
    """Serialise a model instance as an XML document string."""
    element = to_element(instance, root)
    if indent:
        ET.indent(element)
    return ET.tostring(element, encoding="unicode")


def encode_many(items: list[BaseModel], root: str, *, indent: bool = False) -> str:
    """Serialise a list under a wrapper element."""
    wrapper = ET.Element(root)
    for item in items:
        wrapper.append(to_element(item))
    if indent:
        ET.indent(wrapper)
    return ET.tostring(wrapper, encoding="unicode")


# ============================================================================
# Decoding
# ============================================================================

def decode(payload: bytes | str, model: type[BaseModel]) -> dict[str, Any]:
    """Parse an XML document into a dict shaped for model.model_validate."""
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise XMLDecodeError(str(e)) from e
    return from_element(root, model)


def from_element(element: ET.Element, model: type[BaseModel]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for d in describe(model):
        if d.xml_skip:
            continue
        if d.xml_attr:
            if (raw := element.get(d.xml_name)) is not None:
                data[d.wire_name] = raw
            continue

        children = element.findall(d.xml_name)
        if d.kind is FieldKind.ARRAY:
            if children:
                data[d.wire_name] = [_read_value(child, d) for child in children]
        elif not children:
            continue
        elif d.kind is FieldKind.MAP:
            data[d.wire_name] = {
                entry.get(MAP_KEY_ATTR, ""): _read_value(entry, d)
                for entry in children[0].findall(MAP_ENTRY_TAG)
            }
        else:
            data[d.wire_name] = _read_value(children[0], d)
    return data


def _read_value(element: ET.Element, d: FieldDescriptor) -> Any:
    if d.model is not None:
        return from_element(element, d.model)
    return element.text or ""

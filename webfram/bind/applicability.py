"""Rule/Kind Applicability Checks

Decides whether a declared rule makes sense for a field's kind. Mismatches
and unknown rule names are fail-soft: they are logged once per
(model, field, rule) and never raised, and the field keeps every rule that
does apply.

Legal combinations:
    required                        any kind
    min, max, multipleOf            integer, float, arrays of them
    minlength, maxlength, pattern   string, array of string
    minItems, maxItems              array, map
    uniqueItems, emptyItemsAllowed  array
    format                          string, datetime, arrays of them
    enum                            string, integer, float, arrays of them
"""
from __future__ import annotations

import threading

from pydantic import BaseModel

from webfram.logging import bind_logger

from .fields import FieldDescriptor, FieldKind, describe
from .rules import Rule

log = bind_logger()

_SCALAR_ENUM_KINDS = (FieldKind.STRING, FieldKind.INTEGER, FieldKind.FLOAT)
_FORMAT_KINDS = (FieldKind.STRING, FieldKind.DATETIME)

_seen: set[tuple[str, str, str, str]] = set()
_seen_lock = threading.Lock()


def check(rule: Rule, descriptor: FieldDescriptor) -> str | None:
    """Return a diagnostic if rule cannot apply to the field, else None."""
    kind = descriptor.kind
    elem = descriptor.elem_kind if kind is FieldKind.ARRAY else None

    match rule.name:
        case "required":
            return None
        case "min" | "max" | "multipleOf":
            ok = kind.is_numeric or (elem is not None and elem.is_numeric)
            expected = "integer or float types"
        case "minlength" | "maxlength" | "pattern":
            ok = FieldKind.STRING in (kind, elem)
            expected = "string types"
        case "minItems" | "maxItems":
            ok = kind in (FieldKind.ARRAY, FieldKind.MAP)
            expected = "array or map types"
        case "uniqueItems" | "emptyItemsAllowed":
            ok = kind is FieldKind.ARRAY
            expected = "array types"
        case "format":
            ok = kind in _FORMAT_KINDS or elem in _FORMAT_KINDS
            expected = "string or datetime types"
        case "enum":
            ok = kind in _SCALAR_ENUM_KINDS or elem in _SCALAR_ENUM_KINDS
            expected = "string, integer or float types"
        case _:
            return f"unknown validation rule '{rule.name}'"

    if ok: return None
    return f"validation rule '{rule.name}' can only be applied to {expected}, but field is {descriptor.type_label}"


def _first_time(key: tuple[str, str, str, str]) -> bool:
    with _seen_lock:
        if key in _seen: return False
        _seen.add(key)
        return True


def log_once(
    model: type[BaseModel], descriptor: FieldDescriptor, rule: Rule, event: str, *, level: str = "warning", **kw
) -> None:
    """Emit event for (model, field, rule, event) the first time only."""
    if _first_time((model.__qualname__ + "@" + model.__module__, descriptor.name, str(rule), event)):
        getattr(log, level)(event, model=model.__name__, field=descriptor.name, rule=str(rule), **kw)


def applicable_rules(model: type[BaseModel], descriptor: FieldDescriptor) -> list[Rule]:
    """Rules of a field that apply to its kind, logging the rest once."""
    rules: list[Rule] = []
    for rule in descriptor.rules:
        if (diagnostic := check(rule, descriptor)) is None:
            rules.append(rule)
        else:
            log_once(model, descriptor, rule, "validation_rule_misapplied", diagnostic=diagnostic)
    return rules


def check_model(model: type[BaseModel]) -> list[str]:
    """Check every rule of a model and its nested models up front.

    Returns the diagnostics as "Model.field: message" strings and logs each
    one through the same once-only channel the validator uses.
    """
    diagnostics: list[str] = []
    pending, visited = [model], set()
    while pending:
        current = pending.pop()
        if current in visited:
            continue
        visited.add(current)
        for d in describe(current):
            for rule in d.rules:
                if (diagnostic := check(rule, d)) is not None:
                    diagnostics.append(f"{current.__name__}.{d.name}: {diagnostic}")
            applicable_rules(current, d)
            if d.model is not None:
                pending.append(d.model)
    return diagnostics

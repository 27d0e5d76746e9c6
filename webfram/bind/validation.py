"""Recursive Rule Validator

Walks a bound model depth-first and evaluates every declared rule,
accumulating FieldErrors instead of raising. Evaluation is dispatched on the
field's FieldKind:

- integer rules compare on a signed 64-bit saturated value
- float multipleOf compares after scaling by 10^6 and truncating
- string lengths count characters, not bytes
- pattern is an unanchored search; an invalid pattern fails the field
- format=email is the only enforced format
- arrays of scalars apply element rules per element, one error per rule
- arrays of datetime/UUID reject zero elements unless emptyItemsAllowed

Records recurse with the path extended by the field's wire name; arrays of
records recurse per element as name[i]. Datetime and UUID values are leaves.

Usage:
    errors = validate(user)
    if errors:
        return {"errors": [e.to_dict() for e in errors]}
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Iterable

from pydantic import BaseModel

from .applicability import applicable_rules, log_once
from .errors import FieldError
from .fields import NIL_UUID, ZERO_TIME, FieldDescriptor, FieldKind, describe
from .rules import EMPTY_ITEMS_KEY, Rule, has_rule, resolve_message

INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1
MULTIPLE_OF_SCALE = 1_000_000

_ATEXT = r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]"
_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
_U_ALNUM = r"[^\W_]"
_U_ATEXT = r"(?:[^\W_]|[.!#$%&'*+/=?^_`{|}~-])"
_U_LABEL = rf"{_U_ALNUM}(?:(?:{_U_ALNUM}|-){{0,61}}{_U_ALNUM})?"

# ASCII grammar first, then the internationalised one.
EMAIL_RE = re.compile(
    rf"(?:{_ATEXT}+@{_LABEL}(?:\.{_LABEL})*)"
    rf"|(?:{_U_ATEXT}+@{_U_LABEL}(?:\.{_U_LABEL})*)"
)

_ELEMENT_RULES = frozenset({"min", "max", "multipleOf", "minlength", "maxlength", "pattern", "format", "enum"})


class _InvalidArgument(ValueError):
    pass


def validate(value: BaseModel) -> list[FieldError]:
    """Evaluate every rule of value and its nested records."""
    errors: list[FieldError] = []
    _validate_model(value, "", errors)
    return errors


def _validate_model(instance: BaseModel, prefix: str, errors: list[FieldError]) -> None:
    model = type(instance)
    for d in describe(model):
        path = f"{prefix}.{d.wire_name}" if prefix else d.wire_name
        value = getattr(instance, d.name, None)

        for rule in applicable_rules(model, d):
            _apply(model, d, rule, value, path, errors)

        if d.kind is FieldKind.ARRAY and d.elem_kind is not None and d.elem_kind.is_special:
            _check_empty_items(d, value, path, errors)

        if d.kind is FieldKind.RECORD and isinstance(value, BaseModel):
            _validate_model(value, path, errors)
        elif d.kind is FieldKind.ARRAY and d.elem_kind is FieldKind.RECORD and value:
            for i, item in enumerate(value):
                if isinstance(item, BaseModel):
                    _validate_model(item, f"{path}[{i}]", errors)


def _apply(
    model: type[BaseModel], d: FieldDescriptor, rule: Rule, value: Any, path: str, errors: list[FieldError]
) -> None:
    if rule.name == "required":
        if is_zero(d, value):
            errors.append(FieldError(path, resolve_message(d, "required", "is required")))
        return
    if rule.name == "emptyItemsAllowed" or value is None:
        return
    if rule.name == "format" and rule.arg != "email":
        if FieldKind.STRING in (d.kind, d.elem_kind):
            log_once(model, d, rule, "format_not_enforced", level="debug", format=rule.arg)
        return

    try:
        fallback = _failure(d, rule, value)
    except _InvalidArgument as e:
        log_once(model, d, rule, "validation_rule_arg_invalid", reason=str(e))
        return
    if fallback is not None:
        errors.append(FieldError(path, resolve_message(d, rule.name, fallback)))


# ============================================================================
# Emptiness
# ============================================================================

def _is_zero_time(value: datetime) -> bool:
    offset = value.utcoffset()
    if offset not in (None, timedelta(0)): return False
    return value.replace(tzinfo=None) == ZERO_TIME.replace(tzinfo=None)


def is_zero(d: FieldDescriptor, value: Any) -> bool:
    """True when value is the zero value of the field's kind."""
    if value is None: return True
    match d.kind:
        case FieldKind.STRING | FieldKind.ARRAY | FieldKind.MAP:
            return len(value) == 0
        case FieldKind.INTEGER | FieldKind.FLOAT:
            return value == 0
        case FieldKind.BOOLEAN:
            return value is False
        case FieldKind.DATETIME:
            return _is_zero_time(value)
        case FieldKind.UUID:
            return value == NIL_UUID
        case FieldKind.RECORD:
            return _is_zero_record(value)
    return False


def _is_zero_record(value: Any) -> bool:
    """Deep comparison against the record's kind zeros, ignoring field defaults."""
    if not isinstance(value, BaseModel): return not value
    for member in describe(type(value)):
        item = getattr(value, member.name, None)
        # An optional member is only zero when absent
        if member.optional and item is not None: return False
        if not is_zero(member, item): return False
    return True


def _check_empty_items(d: FieldDescriptor, value: Any, path: str, errors: list[FieldError]) -> None:
    if not value or has_rule(d.rules, "emptyItemsAllowed"):
        return
    is_zero_item = _is_zero_time if d.elem_kind is FieldKind.DATETIME else (lambda u: u == NIL_UUID)
    for item in value:
        if item is None or is_zero_item(item):
            errors.append(FieldError(path, resolve_message(d, EMPTY_ITEMS_KEY, "empty items not allowed")))


# ============================================================================
# Rule Predicates
# ============================================================================

def _failure(d: FieldDescriptor, rule: Rule, value: Any) -> str | None:
    """Fallback message if rule fails for value, else None."""
    if d.kind is FieldKind.ARRAY:
        if rule.name in ("minItems", "maxItems"):
            return _count_failure(rule, len(value), "items")
        if rule.name == "uniqueItems":
            return None if _all_unique(value) else "must have unique items"
        if rule.name in _ELEMENT_RULES and d.elem_kind is not None:
            return _first_element_failure(d.elem_kind, rule, value)
        return None
    if d.kind is FieldKind.MAP:
        return _count_failure(rule, len(value), "entries")
    return _scalar_failure(d.kind, rule, value)


def _first_element_failure(kind: FieldKind, rule: Rule, items: Iterable[Any]) -> str | None:
    for item in items:
        if item is not None and (fallback := _scalar_failure(kind, rule, item)) is not None:
            return fallback
    return None


def _scalar_failure(kind: FieldKind, rule: Rule, value: Any) -> str | None:
    match kind:
        case FieldKind.INTEGER:
            return _integer_failure(rule, value)
        case FieldKind.FLOAT:
            return _float_failure(rule, value)
        case FieldKind.STRING:
            return _string_failure(rule, value)
    return None


def _integer_failure(rule: Rule, value: int) -> str | None:
    v = max(INT64_MIN, min(INT64_MAX, int(value)))
    match rule.name:
        case "min":
            if v < (bound := _int_arg(rule)): return f"must be ≥ {bound}"
        case "max":
            if v > (bound := _int_arg(rule)): return f"must be ≤ {bound}"
        case "multipleOf":
            step = _int_arg(rule)
            if step == 0: raise _InvalidArgument("multipleOf must not be zero")
            if v % step != 0: return f"must be a multiple of {step}"
        case "enum":
            allowed = {int(lit) for lit in rule.values if _is_int_literal(lit)}
            if v not in allowed: return _enum_message(rule)
    return None


def _float_failure(rule: Rule, value: float) -> str | None:
    v = float(value)
    match rule.name:
        case "min":
            if v < (bound := _float_arg(rule)): return f"must be ≥ {bound:f}"
        case "max":
            if v > (bound := _float_arg(rule)): return f"must be ≤ {bound:f}"
        case "multipleOf":
            step = _float_arg(rule)
            scaled = int(step * MULTIPLE_OF_SCALE)
            if scaled == 0: raise _InvalidArgument("multipleOf must not be zero")
            if int(v * MULTIPLE_OF_SCALE) % scaled != 0: return f"must be a multiple of {step:f}"
        case "enum":
            allowed = {float(lit) for lit in rule.values if _is_float_literal(lit)}
            if v not in allowed: return _enum_message(rule)
    return None


def _string_failure(rule: Rule, value: str) -> str | None:
    match rule.name:
        case "minlength":
            if len(value) < (bound := _int_arg(rule)): return f"must have at least {bound} characters"
        case "maxlength":
            if len(value) > (bound := _int_arg(rule)): return f"must have at most {bound} characters"
        case "pattern":
            if rule.arg is None: raise _InvalidArgument("pattern needs an expression")
            compiled = _compile(rule.arg)
            if compiled is None or compiled.search(value) is None: return "invalid format"
        case "format":
            if not EMAIL_RE.fullmatch(value): return "is not a valid email address"
        case "enum":
            if value not in rule.values: return _enum_message(rule)
    return None


def _count_failure(rule: Rule, count: int, noun: str) -> str | None:
    match rule.name:
        case "minItems":
            if count < (bound := _int_arg(rule)): return f"must have at least {bound} {noun}"
        case "maxItems":
            if count > (bound := _int_arg(rule)): return f"must have at most {bound} {noun}"
    return None


def _all_unique(items: Iterable[Any]) -> bool:
    seen: set[Any] = set()
    for item in items:
        key = _hash_key(item)
        if key in seen: return False
        seen.add(key)
    return True


def _hash_key(item: Any) -> Any:
    """Item itself when hashable, else a canonical JSON dump of it."""
    try:
        hash(item)
        return item
    except TypeError:
        if isinstance(item, BaseModel): return item.model_dump_json()
        return json.dumps(item, sort_keys=True, default=str)


def _enum_message(rule: Rule) -> str:
    return f"must be one of: {', '.join(rule.values)}"


# ============================================================================
# Argument Parsing
# ============================================================================

def _int_arg(rule: Rule) -> int:
    try:
        return int(rule.arg)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise _InvalidArgument(f"expected an integer argument, got {rule.arg!r}") from None


def _float_arg(rule: Rule) -> float:
    try:
        return float(rule.arg)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise _InvalidArgument(f"expected a numeric argument, got {rule.arg!r}") from None


def _is_int_literal(lit: str) -> bool:
    try: int(lit); return True
    except ValueError: return False


def _is_float_literal(lit: str) -> bool:
    try: float(lit); return True
    except ValueError: return False


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None

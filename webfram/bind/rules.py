"""Rule Grammar and Error Message Resolution

Parses the two per-field annotation strings:

    validate="required,minlength=3,enum=admin|user"
    errmsg="required=Name is required;minlength=Too short"

Rules are comma separated, each either a bare name or name=value. Values
cannot contain commas; the enum argument is itself pipe separated. Custom
messages are semicolon separated rule=message pairs, returned verbatim.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from .fields import FieldDescriptor

# Message key used when a datetime/UUID array holds a zero element.
EMPTY_ITEMS_KEY = "emptyItemsAllowed (not set)"


@dataclass(frozen=True, slots=True)
class Rule:
    """A single parsed rule token, e.g. Rule("minlength", "3")."""
    name: str
    arg: str | None = None

    @property
    def values(self) -> tuple[str, ...]:
        """Pipe-split literals of an enum argument."""
        if self.arg is None: return ()
        return tuple(self.arg.split("|"))

    def __str__(self) -> str:
        return self.name if self.arg is None else f"{self.name}={self.arg}"


def parse_rules(raw: str | None) -> tuple[Rule, ...]:
    """Split a validate annotation into rules, in declaration order."""
    if not raw: return ()
    rules: list[Rule] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        name, sep, arg = token.partition("=")
        rules.append(Rule(name, arg if sep else None))
    return tuple(rules)


def parse_messages(raw: str | None) -> Mapping[str, str]:
    """Split an errmsg annotation into a rule -> message mapping.

    Parts without '=' are ignored. The first occurrence of a rule wins.
    """
    messages: dict[str, str] = {}
    if raw:
        for part in raw.split(";"):
            key, sep, message = part.partition("=")
            if sep and key not in messages:
                messages[key] = message
    return MappingProxyType(messages)


def resolve_message(descriptor: FieldDescriptor, rule: str, fallback: str) -> str:
    """Return the custom message registered for rule, else fallback."""
    return descriptor.messages.get(rule, fallback)


def has_rule(rules: tuple[Rule, ...], name: str) -> bool:
    return any(r.name == name for r in rules)


def find_rule(rules: tuple[Rule, ...], name: str) -> Rule | None:
    return next((r for r in rules if r.name == name), None)

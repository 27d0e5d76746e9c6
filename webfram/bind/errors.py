from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FieldError:
    """One failed rule: the field path and the message to show for it."""
    field: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "error": self.error}

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from nursecred.core.exceptions import ValidationError

E = TypeVar("E", bound=Enum)

URL_PATTERN = re.compile(r"^(https?|ftp)://[^\s/$.?#].[^\s]*$")


class FieldErrors:
    """Collects field violations so a request reports all of them at once."""

    def __init__(self) -> None:
        self.errors: List[Dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.errors.append({"field": field, "message": message})

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self, message: Optional[str] = None) -> None:
        if self.errors:
            raise ValidationError(self.errors, message=message)


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Convert a raw value to an enum member or raise ValidationError."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError.single(field, f"Invalid {field}: {value}. Allowed: {allowed}")


def is_url(value: str) -> bool:
    """http(s) or ftp URL."""
    return bool(URL_PATTERN.match(value))


def clean_tags(tags: Iterable[Any]) -> List[str]:
    """Trim, lowercase and de-duplicate tags, keeping first-seen order."""
    cleaned = (str(tag).strip().lower() for tag in tags)
    return list(dict.fromkeys(tag for tag in cleaned if tag))

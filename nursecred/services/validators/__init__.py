"""Field validators shared by the services."""

from .fields import FieldErrors, clean_tags, is_url, parse_enum

__all__ = ["FieldErrors", "clean_tags", "is_url", "parse_enum"]

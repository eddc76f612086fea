"""
Stored file model for uploaded documents and nurse schedules.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel


class FileCategory(str, Enum):
    """File category enumeration."""

    GUIDELINES = "guidelines"
    TEMPLATES = "templates"
    REFERENCES = "references"
    NURSE_SCHEDULES = "nurse_schedules"


class ScheduleMonth(str, Enum):
    """Month names used on nurse schedules."""

    JANUARI = "Januari"
    FEBRUARI = "Februari"
    MARET = "Maret"
    APRIL = "April"
    MEI = "Mei"
    JUNI = "Juni"
    JULI = "Juli"
    AGUSTUS = "Agustus"
    SEPTEMBER = "September"
    OKTOBER = "Oktober"
    NOVEMBER = "November"
    DESEMBER = "Desember"


def format_file_size(size: int) -> str:
    """Render a byte count as e.g. '1.5 MB'."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while size >= 1024 ** (i + 1) and i < len(units) - 1:
        i += 1
    value = round(size / 1024 ** i, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"


def schedule_display_name(unit: Optional[str], month: Optional[str], year: Optional[int]) -> str:
    return f"Jadwal Perawat {unit or ''} - {month or ''} {year or ''}".strip()


class StoredFile(SQLModel, table=True):
    """
    Metadata of an uploaded file; the bytes live in file storage.

    Schedule files (category nurse_schedules) also carry month, year and unit.
    """

    __tablename__ = "files"  # type: ignore

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    file_name: str = Field(unique=True, index=True)
    original_name: str
    display_name: str
    category: FileCategory = Field(default=FileCategory.GUIDELINES, index=True)
    file_type: str
    size: int
    path: str
    url: str
    uploaded_by: str = Field(foreign_key="users.id", index=True)

    # Schedule metadata
    schedule_month: Optional[ScheduleMonth] = Field(default=None, index=True)
    schedule_year: Optional[int] = None
    schedule_unit: Optional[str] = Field(default=None, index=True)

    download_count: int = Field(default=0)
    is_active: bool = Field(default=True, index=True)
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size_formatted(self) -> str:
        return format_file_size(self.size)

"""
File schemas for API responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from nursecred.models.file import FileCategory, StoredFile


class FileResponse(BaseModel):
    """Uploaded file as shown in listings; schedule fields only for schedules."""

    id: str
    name: str
    original_name: str
    category: FileCategory
    type: str
    size: str
    size_bytes: int
    url: str
    uploaded_by: str
    uploaded_at: datetime
    download_count: int
    month: Optional[str] = None
    unit: Optional[str] = None
    year: Optional[int] = None

    @classmethod
    def from_model(cls, stored: StoredFile) -> "FileResponse":
        return cls(
            id=stored.id,
            name=stored.display_name,
            original_name=stored.original_name,
            category=stored.category,
            type=stored.file_type,
            size=stored.size_formatted,
            size_bytes=stored.size,
            url=stored.url,
            uploaded_by=stored.uploaded_by,
            uploaded_at=stored.uploaded_at,
            download_count=stored.download_count,
            month=stored.schedule_month.value if stored.schedule_month else None,
            unit=stored.schedule_unit,
            year=stored.schedule_year,
        )


class FilePage(BaseModel):
    files: List[FileResponse]
    current_page: int
    total_pages: int
    total_count: int


class CategoryStats(BaseModel):
    category: FileCategory
    count: int
    total_size: int
    total_downloads: int


class FileStats(BaseModel):
    categories: List[CategoryStats]
    total_files: int
    total_size: int
    total_size_formatted: str

"""
File service for uploaded documents and nurse schedules.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy import String, cast, func, or_
from sqlmodel import Session, select

from nursecred.core.config import settings
from nursecred.core.exceptions import NotFoundError, ValidationError
from nursecred.core.logging import get_logger
from nursecred.models.file import (
    FileCategory,
    ScheduleMonth,
    StoredFile,
    format_file_size,
    schedule_display_name,
)
from nursecred.services.file_storage_service import FileStorageService
from nursecred.services.validators import FieldErrors, parse_enum

logger = get_logger(__name__)

EXCEL_MIME_TYPES = (
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)

# Accepted upload types and the short type shown to clients
FILE_TYPES: Dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "docx",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xlsx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "ppt",
    "text/plain": "txt",
    "image/jpeg": "img",
    "image/png": "img",
    "image/gif": "img",
    "application/zip": "zip",
    "application/x-zip-compressed": "zip",
}


def file_type_for(mime_type: Optional[str]) -> str:
    return FILE_TYPES.get(mime_type or "", "default")


class FileService:
    """
    Service for uploaded files.
    Coordinates between file storage and the files table.
    """

    def __init__(self, session: Session, storage: FileStorageService):
        self.session = session
        self.storage = storage

    def upload(
        self,
        file: UploadFile,
        uploaded_by: str,
        category: FileCategory = FileCategory.GUIDELINES,
        display_name: Optional[str] = None,
        month: Optional[str] = None,
        unit: Optional[str] = None,
        year: Optional[int] = None,
    ) -> StoredFile:
        """
        Validate and store an upload.

        Schedules must be Excel files and need a month and a unit; the year
        defaults to the current one.

        Raises:
            ValidationError: missing file, disallowed type, too large, or
                incomplete schedule metadata
        """
        if file is None or not file.filename:
            raise ValidationError.single("file", "No file provided")

        mime_type = file.content_type
        is_schedule = category == FileCategory.NURSE_SCHEDULES

        if is_schedule and mime_type not in EXCEL_MIME_TYPES:
            raise ValidationError.single("file", "Only Excel files allowed for nurse schedules")
        if mime_type not in FILE_TYPES:
            raise ValidationError.single(
                "file",
                "File type not allowed. Please upload PDF, DOC, XLS, PPT, TXT, images, or ZIP files.",
            )

        schedule_month = None
        if is_schedule:
            errors = FieldErrors()
            unit = unit.strip() if unit else None
            if not month:
                errors.add("month", "Month is required for nurse schedules")
            else:
                try:
                    schedule_month = ScheduleMonth(month)
                except ValueError:
                    errors.add("month", f"Invalid month: {month}")
            if not unit:
                errors.add("unit", "Unit is required for nurse schedules")
            errors.raise_if_any("Month and unit are required for nurse schedules")
            year = year or datetime.now(timezone.utc).year

        file_name, path, size = self.storage.save_upload(
            file, category.value, max_bytes=settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
        )

        if not display_name:
            if is_schedule:
                display_name = schedule_display_name(unit, month, year)
            else:
                display_name = file.filename

        stored = StoredFile(
            file_name=file_name,
            original_name=file.filename,
            display_name=display_name,
            category=category,
            file_type=file_type_for(mime_type),
            size=size,
            path=path,
            url=f"{settings.API_PREFIX}/files/download/{file_name}",
            uploaded_by=uploaded_by,
            schedule_month=schedule_month,
            schedule_year=year if is_schedule else None,
            schedule_unit=unit if is_schedule else None,
        )
        try:
            self.session.add(stored)
            self.session.commit()
        except Exception:
            self.session.rollback()
            self.storage.delete_file(path)
            raise
        self.session.refresh(stored)

        logger.info(f"Stored file {stored.file_name} ({stored.size_formatted}) uploaded by {uploaded_by}")
        return stored

    def list_files(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        month: Optional[str] = None,
        unit: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """
        List active files, newest first.

        Month and unit filters apply to schedule listings only.
        """
        page = max(page, 1)
        limit = max(limit, 1)
        conditions: List[Any] = [StoredFile.is_active == True]  # noqa: E712

        is_schedule = category == FileCategory.NURSE_SCHEDULES.value
        if category and category != "all":
            conditions.append(StoredFile.category == parse_enum(FileCategory, category, "category"))
            if is_schedule:
                if month:
                    conditions.append(StoredFile.schedule_month == parse_enum(ScheduleMonth, month, "month"))
                if unit:
                    conditions.append(StoredFile.schedule_unit == unit)

        if search:
            matches = [
                StoredFile.display_name.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                StoredFile.original_name.icontains(search, autoescape=True),  # type: ignore[attr-defined]
            ]
            if is_schedule:
                matches.append(StoredFile.schedule_unit.icontains(search, autoescape=True))  # type: ignore[union-attr]
                matches.append(cast(StoredFile.schedule_month, String).icontains(search, autoescape=True))
            conditions.append(or_(*matches))

        total = self.session.exec(select(func.count()).select_from(StoredFile).where(*conditions)).one()
        files = self.session.exec(
            select(StoredFile)
            .where(*conditions)
            .order_by(StoredFile.uploaded_at.desc())  # type: ignore[attr-defined]
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return {
            "files": list(files),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
        }

    def list_schedules(
        self,
        month: Optional[str] = None,
        unit: Optional[str] = None,
        year: Optional[int] = None,
    ) -> List[StoredFile]:
        """Active nurse schedules, latest year first."""
        query = select(StoredFile).where(
            StoredFile.is_active == True,  # noqa: E712
            StoredFile.category == FileCategory.NURSE_SCHEDULES,
        )
        if month:
            query = query.where(StoredFile.schedule_month == parse_enum(ScheduleMonth, month, "month"))
        if unit:
            query = query.where(StoredFile.schedule_unit == unit)
        if year:
            query = query.where(StoredFile.schedule_year == year)
        query = query.order_by(
            StoredFile.schedule_year.desc(),  # type: ignore[union-attr]
            StoredFile.uploaded_at.desc(),  # type: ignore[attr-defined]
        )
        return list(self.session.exec(query))

    def get_for_download(self, file_name: str) -> StoredFile:
        """
        Look up an active file by stored name and count the download.

        Raises:
            NotFoundError: unknown file, or its bytes are gone from storage
        """
        stored = self.session.exec(
            select(StoredFile).where(
                StoredFile.file_name == file_name,
                StoredFile.is_active == True,  # noqa: E712
            )
        ).first()
        if stored is None:
            raise NotFoundError("File not found")
        if self.storage.resolve(stored.path) is None:
            logger.error(f"File {stored.file_name} missing from storage at {stored.path}")
            raise NotFoundError("File not found on server")

        stored.download_count += 1
        self.session.add(stored)
        self.session.commit()
        self.session.refresh(stored)
        return stored

    def soft_delete(self, file_id: str) -> StoredFile:
        stored = self.session.get(StoredFile, file_id)
        if stored is None or not stored.is_active:
            raise NotFoundError("File not found")
        stored.is_active = False
        stored.updated_at = datetime.now(timezone.utc)
        self.session.add(stored)
        self.session.commit()
        logger.info(f"Deactivated file {file_id}")
        return stored

    def get_stats(self) -> Dict[str, Any]:
        """Per-category counts, sizes and downloads of active files."""
        active = StoredFile.is_active == True  # noqa: E712
        rows = self.session.exec(
            select(
                StoredFile.category,
                func.count(),
                func.coalesce(func.sum(StoredFile.size), 0),
                func.coalesce(func.sum(StoredFile.download_count), 0),
            )
            .where(active)
            .group_by(StoredFile.category)
        ).all()

        categories = [
            {
                "category": category,
                "count": count,
                "total_size": int(total_size),
                "total_downloads": int(total_downloads),
            }
            for category, count, total_size, total_downloads in rows
        ]
        total_size = sum(c["total_size"] for c in categories)
        return {
            "categories": categories,
            "total_files": sum(c["count"] for c in categories),
            "total_size": total_size,
            "total_size_formatted": format_file_size(total_size),
        }

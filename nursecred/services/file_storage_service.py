"""
File storage service for uploaded documents and question images.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple
from uuid import uuid4

from fastapi import UploadFile

from nursecred.core.config import settings
from nursecred.core.exceptions import ValidationError
from nursecred.core.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileStorageService:
    """
    Manages file storage for:
    - Uploaded documents, one directory per category
    - Question images
    """

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or settings.FILE_STORAGE_PATH)
        self.uploads_path = self.base_path / 'uploads'
        self.images_path = self.uploads_path / 'questions'

        # Create directories if they don't exist
        self._ensure_directories()

    def _ensure_directories(self):
        """Ensure all required directories exist."""
        for path in [self.uploads_path, self.images_path]:
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Ensured directory exists: {path}")

    def save_upload(
        self,
        file: UploadFile,
        folder: str,
        max_bytes: int,
    ) -> Tuple[str, str, int]:
        """
        Save an uploaded file, enforcing a size limit while copying.

        Args:
            file: The uploaded file from FastAPI
            folder: Sub-directory of the uploads area (e.g. the file category)
            max_bytes: Largest accepted size

        Returns:
            Tuple of (stored file name, path, size in bytes)

        Raises:
            ValidationError: the upload exceeds max_bytes
        """
        target_dir = self.uploads_path / self._sanitize_filename(folder, require_extension=False)
        target_dir.mkdir(parents=True, exist_ok=True)

        # Sanitize filename
        safe_filename = self._sanitize_filename(file.filename or 'upload')

        # Timestamp plus random suffix keeps stored names unique
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        final_filename = f"{timestamp}_{uuid4().hex[:8]}_{safe_filename}"
        file_path = target_dir / final_filename

        size = 0
        with file_path.open('wb') as buffer:
            while True:
                chunk = file.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    break
                buffer.write(chunk)

        if size > max_bytes:
            file_path.unlink(missing_ok=True)
            limit_mb = max_bytes // (1024 * 1024)
            logger.warning(f"Rejected upload {safe_filename}: larger than {limit_mb} MB")
            raise ValidationError.single("file", f"File too large. Maximum size is {limit_mb} MB")

        logger.info(f"Saved uploaded file: {file_path} ({size} bytes)")
        return final_filename, str(file_path), size

    def resolve(self, file_path: str) -> Optional[Path]:
        """
        Return the path of a stored file if it exists inside the storage root.

        Args:
            file_path: Path recorded at upload time

        Returns:
            The resolved path or None if missing or outside storage
        """
        path = Path(file_path).resolve()
        if not path.is_relative_to(self.base_path.resolve()) or not path.is_file():
            return None
        return path

    def delete_file(self, file_path: str) -> bool:
        """
        Delete a stored file.

        Args:
            file_path: Path recorded at upload time

        Returns:
            True if a file was removed, False otherwise
        """
        path = self.resolve(file_path)
        if path is None:
            return False
        path.unlink()
        logger.info(f"Deleted stored file: {path}")
        return True

    def _sanitize_filename(self, filename: str, require_extension: bool = True) -> str:
        """
        Sanitize a filename to prevent path traversal attacks.

        Args:
            filename: The original filename
            require_extension: Append ".unknown" when there is no extension

        Returns:
            A safe filename
        """
        # Remove any path components
        filename = Path(filename).name

        # Replace spaces and special characters
        safe_chars = set('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-')
        sanitized = ''.join(c if c in safe_chars else '_' for c in filename)

        # Ensure it has an extension
        if require_extension and '.' not in sanitized:
            sanitized = f"{sanitized}.unknown"

        return sanitized or 'upload'

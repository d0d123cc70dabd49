from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..config import settings
from ..constants import ALLOWED_UPLOAD_TYPES, MAX_UPLOAD_BYTES
from ..core.errors import ValidationFailed

INVALID_TYPE_MESSAGE = "Format fail tidak sah. Sila muat naik JPG, PNG atau PDF sahaja."
TOO_LARGE_MESSAGE = "Saiz fail terlalu besar (Max 5MB)."
EMPTY_FILE_MESSAGE = "Sila pilih fail untuk dimuat naik."


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class StoredFile:
    relative_path: str
    public_path: str
    local_path: str


def validate_upload(upload: Optional[UploadedFile]) -> str:
    """Check type and size of an upload and return the file extension to store it under."""
    if upload is None or not upload.content:
        raise ValidationFailed(EMPTY_FILE_MESSAGE)
    content_type = (upload.content_type or mimetypes.guess_type(upload.filename or "")[0] or "").lower()
    extension = ALLOWED_UPLOAD_TYPES.get(content_type)
    if extension is None:
        raise ValidationFailed(INVALID_TYPE_MESSAGE)
    if upload.size > MAX_UPLOAD_BYTES:
        raise ValidationFailed(TOO_LARGE_MESSAGE)
    return extension


class StorageService:
    """Writes uploads below ``uploads_root`` and hands back their public URL path."""

    def __init__(self, upload_root: Optional[Path] = None, public_prefix: Optional[str] = None) -> None:
        self.upload_root = Path(upload_root or settings.uploads_root_path)
        self.public_prefix = (public_prefix or settings.uploads_public_prefix).strip("/")

    def _normalize_relative(self, relative_path: str) -> str:
        relative = relative_path.strip().lstrip("/")
        if relative.startswith(self.public_prefix + "/"):
            relative = relative.split("/", 1)[1]
        return relative

    def save_file(self, relative_path: str, content: bytes) -> StoredFile:
        relative = self._normalize_relative(relative_path)
        target_path = self.upload_root / relative
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_bytes(content)
        return StoredFile(
            relative_path=relative,
            public_path=f"/{self.public_prefix}/{relative}",
            local_path=str(target_path),
        )

    def delete_file(self, stored: StoredFile) -> None:
        Path(stored.local_path).unlink(missing_ok=True)

    def save_upload(self, folder: str, stem: str, upload: UploadedFile) -> StoredFile:
        """Validate ``upload`` and store it as ``{folder}/{stem}-{timestamp}.{ext}``."""
        extension = validate_upload(upload)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        return self.save_file(f"{folder}/{stem}-{timestamp}.{extension}", upload.content)


storage_service = StorageService()

from typing import Optional

from fastapi import UploadFile

from ..auth.jwt import get_db  # noqa: F401  re-exported for routers
from ..services.storage import UploadedFile


async def read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    """Read a multipart upload into memory so services stay framework agnostic."""
    if file is None:
        return None
    content = await file.read()
    if not content and not file.filename:
        return None
    return UploadedFile(filename=file.filename or "", content_type=file.content_type, content=content)

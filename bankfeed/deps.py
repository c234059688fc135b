# bankfeed/deps.py
# Role: Shared application-level dependencies.
#       Provides the standard SQLAlchemy database session dependency and the
#       upload-boundary check used by the statement routes.

"""
Shared dependencies for the banking API.
"""

import os
from typing import Generator

from fastapi import UploadFile
from sqlalchemy.orm import Session

from bankfeed.config import settings
from bankfeed.db import SessionLocal
from bankfeed.errors import ValidationFailed

# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------------------------------------------------
# Upload boundary
# -------------------------------------------------------------------


async def read_statement_upload(file: UploadFile) -> tuple[bytes, str]:
    """
    Read an uploaded statement into memory after checking the extension
    allow-list and the size cap. Uploaded bytes are never written to disk.

    Returns (file_bytes, original_filename).
    """
    filename = file.filename or ""
    ext = os.path.splitext(filename)[1].lower().lstrip(".")

    if ext not in settings.allowed_extensions:
        allowed = ", ".join(settings.allowed_extensions)
        raise ValidationFailed(f"Unsupported file type '.{ext}'. Allowed: {allowed}")

    # Read one byte past the cap so oversize files are detected without reading them fully
    file_bytes = await file.read(settings.max_upload_bytes + 1)
    if len(file_bytes) > settings.max_upload_bytes:
        raise ValidationFailed(f"File exceeds the {settings.max_upload_mb} MB upload limit")
    if not file_bytes:
        raise ValidationFailed("Uploaded file is empty")

    return file_bytes, filename

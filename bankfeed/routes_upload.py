# bankfeed/routes_upload.py
"""
Routes for the statement upload flow:

    POST /statements/preview   parse only, shows detected format and mapping
    POST /statements/import    parse + dedup + insert into one bank account

Uploaded bytes are processed in memory and never written to disk.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from bankfeed.deps import get_db, read_statement_upload
from bankfeed.services.bank_formats import AUTO
from bankfeed.services.bank_import import import_statement, preview_statement

router = APIRouter(prefix="/statements")


@router.post("/preview")
async def upload_preview(
    file: UploadFile = File(...),
    bank_format: str = Form(AUTO),
):
    """
    Step 1: let the user confirm the detected format and column mapping
    before committing anything.
    """
    file_bytes, filename = await read_statement_upload(file)
    return preview_statement(file_bytes, filename, bank_format)


@router.post("/import")
async def upload_import(
    file: UploadFile = File(...),
    bank_account_id: int = Form(...),
    bank_format: str = Form(AUTO),
    db: Session = Depends(get_db),
):
    """
    Step 2: import into the chosen account. Duplicates are skipped and
    counted; the response always carries imported/skipped/total counts.
    """
    file_bytes, filename = await read_statement_upload(file)
    return import_statement(db, bank_account_id, file_bytes, filename, bank_format)

"""Import router - classify uploaded documents, parse old invoices and import them in batches"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...shared.validators import read_validated_upload, validate_upload_metadata
from .service import ImportService, parse_batch_metadata

router = APIRouter(prefix="/import", tags=["Import"])

analyze_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="analyze")
parse_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="parse")
batch_rate_limiter = create_rate_limiter(limit=5, window_seconds=60, key_prefix="import_batch")

FILE_FIELD_PREFIX = "file_"


def get_import_service(db: Session = Depends(get_db)) -> ImportService:
    """Dependency injection for ImportService"""
    return ImportService(db)


@router.post("/analyze", dependencies=[Depends(analyze_rate_limiter)])
async def analyze_document(
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
):
    """Classify a receipt or invoice and extract its data; invoices get a client match"""
    content = await read_validated_upload(file)
    return await service.analyze_document(
        content, file.content_type, file.filename or "document", current_user
    )


@router.post("/parse-invoice", dependencies=[Depends(parse_rate_limiter)])
async def parse_invoice(
    file: Optional[UploadFile] = File(None),
    invoice_number: Optional[int] = Form(None, alias="invoiceNumber"),
    current_user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
):
    content = await read_validated_upload(file)
    return await service.parse_invoice_pdf(
        content, file.content_type, file.filename or "invoice.pdf", current_user, invoice_number
    )


@router.post("/batch", dependencies=[Depends(batch_rate_limiter)])
async def batch_import(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
):
    """
    Multipart form: metadata (JSON list of reviewed documents), skipDuplicates ("true"/"false")
    and one file_<id> field per document.
    """
    form = await request.form()
    items = parse_batch_metadata(form.get("metadata"))

    uploads = {}
    for field, value in form.multi_items():
        if not field.startswith(FILE_FIELD_PREFIX) or not isinstance(value, StarletteUploadFile):
            continue
        content = await value.read()
        validate_upload_metadata(value.content_type, len(content))
        uploads[field[len(FILE_FIELD_PREFIX):]] = {
            "filename": value.filename,
            "content_type": value.content_type,
            "content": content,
        }

    skip_duplicates = form.get("skipDuplicates") == "true"
    return await service.batch_import(items, uploads, skip_duplicates, current_user)


__all__ = ["router"]

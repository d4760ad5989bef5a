"""Manual records and their stored files."""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.manual import Manual, ManualChunk, ManualPageImage
from app.services.page_images import PAGE_IMAGES_BUCKET, page_image_prefix
from app.services.storage import MANUALS_BUCKET, ObjectStorage, manual_file_key, sanitize_filename

logger = logging.getLogger(__name__)


class InvalidManualFile(ValueError):
    pass


def validate_pdf_upload(filename: str, content: bytes) -> str:
    """Check extension, size and PDF magic bytes. Returns the sanitized name."""
    safe_name = sanitize_filename(filename)
    if not safe_name or not safe_name.lower().endswith(".pdf"):
        raise InvalidManualFile("File type not allowed. Only PDF files are accepted.")
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise InvalidManualFile(
            f"File too large. Maximum size: {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB"
        )
    if content[:4] != b"%PDF":
        raise InvalidManualFile("Invalid PDF file. File content does not match PDF format.")
    return safe_name


def create_manual(
    db: Session,
    storage: ObjectStorage,
    company_id: int,
    filename: str,
    content: bytes,
    title: Optional[str] = None,
    machine_type: Optional[str] = None,
    brand: Optional[str] = None,
    model: Optional[str] = None,
) -> Manual:
    """Store the raw PDF and create its manual record."""
    safe_name = validate_pdf_upload(filename, content)
    key = manual_file_key(safe_name)
    storage.upload(MANUALS_BUCKET, key, content)

    manual = Manual(
        company_id=company_id,
        title=title or safe_name.rsplit(".", 1)[0],
        machine_type=machine_type,
        brand=brand,
        model=model,
        file_name=safe_name,
        file_path=key,
        file_url=storage.public_url(MANUALS_BUCKET, key),
        processing_status="pending",
    )
    db.add(manual)
    db.commit()
    db.refresh(manual)
    logger.info(f"Manual {manual.id} uploaded: {safe_name} ({len(content)} bytes)")
    return manual


def list_manuals(
    db: Session,
    company_id: int,
    search: Optional[str] = None,
    machine_type: Optional[str] = None,
    brand: Optional[str] = None,
):
    query = db.query(Manual).filter(Manual.company_id == company_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Manual.title.ilike(pattern), Manual.content_extracted.ilike(pattern)))
    if machine_type:
        query = query.filter(Manual.machine_type == machine_type)
    if brand:
        query = query.filter(Manual.brand.ilike(brand))
    return query.order_by(Manual.title).all()


def delete_manual(db: Session, storage: ObjectStorage, manual: Manual) -> dict:
    """Delete a manual with its raw file, its page images and all embedding rows."""
    manual_id = manual.id
    chunks = db.query(ManualChunk).filter(ManualChunk.manual_id == manual_id).count()
    pages = db.query(ManualPageImage).filter(ManualPageImage.manual_id == manual_id).count()
    file_path = manual.file_path

    db.delete(manual)
    db.commit()

    files_deleted = 0
    if file_path:
        files_deleted += storage.remove(MANUALS_BUCKET, [file_path])
    files_deleted += storage.remove_prefix(PAGE_IMAGES_BUCKET, page_image_prefix(manual_id))

    logger.info(
        f"Deleted manual {manual_id}: {chunks} chunks, {pages} page images, {files_deleted} files"
    )
    return {
        "message": f"Manual {manual_id} and all associated data deleted",
        "chunks_deleted": chunks,
        "page_images_deleted": pages,
        "files_deleted": files_deleted,
    }

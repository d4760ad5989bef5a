"""Manual upload, processing and deletion."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session
from typing import Callable, List, Optional

from app.api.deps import get_provider_factory
from app.core.database import get_db, get_session_factory
from app.core.security import get_current_user
from app.models.manual import Manual, ManualChunk, ManualPageImage
from app.models.user import User
from app.schemas.manual import (
    ManualDeleted,
    ManualDetail,
    ManualResponse,
    ProcessingMode,
    ProcessingQueued,
)
from app.services.ai_providers import AIProvider
from app.services.document_ingestion import claim_manual, is_processing, run_manual_processing
from app.services.manuals import create_manual, delete_manual, list_manuals
from app.services.provider_config import load_provider_config
from app.services.storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_manual(db: Session, manual_id: int, company_id: int) -> Manual:
    manual = db.get(Manual, manual_id)
    if not manual or manual.company_id != company_id:
        raise HTTPException(status_code=404, detail="Manual not found")
    return manual


def _queue_processing(
    background_tasks: BackgroundTasks,
    db: Session,
    manual: Manual,
    mode: ProcessingMode,
    session_factory,
    storage: ObjectStorage,
    provider_factory: Callable[..., AIProvider],
) -> ProcessingQueued:
    # Fail fast on a missing API key instead of inside the background task
    load_provider_config(db, manual.company_id)
    claim_manual(db, manual.id)

    background_tasks.add_task(
        run_manual_processing,
        session_factory,
        storage,
        manual.id,
        process_text=mode in ("text", "both"),
        process_images=mode in ("images", "both"),
        provider_factory=provider_factory,
    )
    logger.info(f"Queued {mode} processing for manual {manual.id}")
    return ProcessingQueued(
        manual_id=manual.id,
        mode=mode,
        message=f"Processing started for '{manual.title}'",
    )


@router.get("/", response_model=List[ManualResponse])
def get_manuals(
    search: Optional[str] = None,
    machine_type: Optional[str] = None,
    brand: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_manuals(db, current_user.company_id, search, machine_type, brand)


@router.post("/", response_model=ManualResponse, status_code=201)
async def upload_manual(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    machine_type: Optional[str] = Form(None),
    brand: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    process_text: bool = Form(True),
    process_images: bool = Form(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    storage: ObjectStorage = Depends(get_storage),
    provider_factory: Callable[..., AIProvider] = Depends(get_provider_factory),
):
    """
    Upload a PDF manual and optionally start processing it.

    Processing runs after the response is sent; poll the manual's
    ``processing_status`` to follow it.
    """
    mode = None
    if process_text and process_images:
        mode = "both"
    elif process_text:
        mode = "text"
    elif process_images:
        mode = "images"

    if mode:
        # Reject before anything is stored so a retry does not duplicate the manual
        load_provider_config(db, current_user.company_id)

    content = await file.read()
    manual = create_manual(
        db, storage, current_user.company_id, file.filename or "",
        content, title, machine_type, brand, model,
    )

    if mode:
        _queue_processing(
            background_tasks, db, manual, mode, session_factory, storage, provider_factory
        )
        db.refresh(manual)
    return manual


@router.get("/{manual_id}", response_model=ManualDetail)
def get_manual(manual_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    manual = _get_manual(db, manual_id, current_user.company_id)
    detail = ManualDetail.model_validate(manual)
    detail.chunk_count = db.query(ManualChunk).filter(ManualChunk.manual_id == manual_id).count()
    detail.page_image_count = (
        db.query(ManualPageImage).filter(ManualPageImage.manual_id == manual_id).count()
    )
    return detail


@router.get("/{manual_id}/pages")
def get_manual_pages(manual_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Rendered pages that have a stored description."""
    _get_manual(db, manual_id, current_user.company_id)
    pages = (
        db.query(ManualPageImage)
        .filter(ManualPageImage.manual_id == manual_id)
        .order_by(ManualPageImage.page_number)
        .all()
    )
    return {
        "manual_id": manual_id,
        "pages": [
            {
                "page_number": p.page_number,
                "image_url": p.image_url,
                "description": p.image_description,
            }
            for p in pages
        ],
    }


@router.post("/{manual_id}/process", response_model=ProcessingQueued, status_code=202)
def process_manual(
    manual_id: int,
    background_tasks: BackgroundTasks,
    mode: ProcessingMode = "text",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    storage: ObjectStorage = Depends(get_storage),
    provider_factory: Callable[..., AIProvider] = Depends(get_provider_factory),
):
    """(Re)process a manual. Returns 409 while another run is in progress."""
    manual = _get_manual(db, manual_id, current_user.company_id)
    return _queue_processing(
        background_tasks, db, manual, mode, session_factory, storage, provider_factory
    )


@router.delete("/{manual_id}", response_model=ManualDeleted)
def remove_manual(
    manual_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    manual = _get_manual(db, manual_id, current_user.company_id)
    if is_processing(manual):
        raise HTTPException(status_code=409, detail="Manual is being processed")
    return delete_manual(db, storage, manual)

"""Manual ingestion: text chunk embeddings and page image embeddings.

Both paths process items strictly one after another. A failure on one chunk or
page is logged, counted and skipped so a single bad embedding call never throws
away the rows already committed for the rest of the manual.
"""
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import FleetDeskError, ManualBusyError
from app.models.manual import Manual, ManualChunk, ManualPageImage
from app.services.ai_providers import AIProvider, build_provider
from app.services.chunking import chunk_text
from app.services.embeddings import embedding_signature, generate_embedding
from app.services.page_images import (
    PAGE_IMAGE_MIME_TYPE,
    PAGE_IMAGES_BUCKET,
    PageRasterizer,
    page_image_key,
)
from app.services.pdf_extraction import extract_text
from app.services.provider_config import load_provider_config
from app.services.storage import MANUALS_BUCKET, ObjectStorage

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class IngestionResult:
    total: int = 0
    processed: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _stale_cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=settings.PROCESSING_STALE_AFTER)


def is_processing(manual: Manual, now: Optional[datetime] = None) -> bool:
    """True while a run holds the manual and its claim has not gone stale."""
    if manual.processing_status != "processing":
        return False
    started = manual.processing_started_at
    if started is None:
        return False
    if started.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC
        started = started.replace(tzinfo=timezone.utc)
    return started > _stale_cutoff(now or _utcnow())


def claim_manual(db: Session, manual_id: int) -> None:
    """Move a manual to ``processing`` unless a run is already in progress.

    The check and the transition are a single UPDATE, so two concurrent
    triggers cannot both succeed. A claim older than
    ``PROCESSING_STALE_AFTER`` belongs to a run that died without finishing
    (restart, OOM) and is taken over.
    """
    now = _utcnow()
    updated = (
        db.query(Manual)
        .filter(
            Manual.id == manual_id,
            or_(
                Manual.processing_status != "processing",
                Manual.processing_started_at.is_(None),
                Manual.processing_started_at < _stale_cutoff(now),
            ),
        )
        .update(
            {"processing_status": "processing", "processing_started_at": now},
            synchronize_session=False,
        )
    )
    db.commit()
    if not updated:
        if db.get(Manual, manual_id) is None:
            raise LookupError(f"Manual {manual_id} not found")
        raise ManualBusyError(manual_id)


def refresh_claim(db: Session, manual_id: int) -> None:
    """Push the claim forward so a long run is not mistaken for a dead one."""
    db.query(Manual).filter(
        Manual.id == manual_id, Manual.processing_status == "processing"
    ).update({"processing_started_at": _utcnow()}, synchronize_session=False)
    db.commit()


def finish_manual(db: Session, manual_id: int, status: str) -> None:
    db.query(Manual).filter(Manual.id == manual_id).update(
        {"processing_status": status, "processing_started_at": None},
        synchronize_session=False,
    )
    db.commit()


class ManualTextIngestor:
    """Extract -> chunk -> embed -> persist for one manual."""

    def __init__(
        self,
        db: Session,
        provider: AIProvider,
        chunk_size: int = settings.CHUNK_SIZE,
        overlap: int = settings.CHUNK_OVERLAP,
        min_length: int = settings.MIN_CHUNK_LENGTH,
    ):
        self.db = db
        self.provider = provider
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_length = min_length

    def process_manual(self, manual_id: int, file_bytes: bytes) -> IngestionResult:
        manual = self.db.get(Manual, manual_id)
        if manual is None:
            raise LookupError(f"Manual {manual_id} not found")

        text = extract_text(file_bytes)

        # Persist right away so keyword search works even if embedding fails
        manual.content_extracted = text
        self.db.commit()

        chunks = chunk_text(text, self.chunk_size, self.overlap, self.min_length)
        result = IngestionResult(total=len(chunks))

        # Reprocessing replaces the previous chunk rows
        self.db.query(ManualChunk).filter(ManualChunk.manual_id == manual_id).delete(
            synchronize_session=False
        )
        self.db.commit()

        signature = embedding_signature(self.provider)
        for index, content in enumerate(chunks):
            try:
                embedding = generate_embedding(self.provider, content)
                self.db.add(ManualChunk(
                    manual_id=manual_id,
                    content=content,
                    embedding=embedding,
                    metadata_={"source": "pdf_text", "chunk_index": index},
                    **signature,
                ))
                self.db.commit()
                result.processed += 1
            except Exception as e:
                self.db.rollback()
                result.failed += 1
                logger.warning(
                    f"Chunk {index + 1}/{len(chunks)} of manual {manual_id} failed: {e}"
                )

        logger.info(
            f"Text ingestion for manual {manual_id}: {result.processed}/{result.total} "
            f"chunks embedded, {result.failed} failed"
        )
        return result


class ManualImageIngestor:
    """Render -> upload -> describe -> embed -> persist for every page of a manual."""

    def __init__(
        self,
        db: Session,
        provider: AIProvider,
        storage: ObjectStorage,
        page_delay: float = settings.PAGE_PROCESSING_DELAY,
        render_scale: float = settings.PAGE_RENDER_SCALE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.provider = provider
        self.storage = storage
        self.page_delay = page_delay
        self.render_scale = render_scale
        self.sleep = sleep

    def process_manual_images(
        self,
        manual_id: int,
        file_bytes: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestionResult:
        if self.db.get(Manual, manual_id) is None:
            raise LookupError(f"Manual {manual_id} not found")

        self.db.query(ManualPageImage).filter(ManualPageImage.manual_id == manual_id).delete(
            synchronize_session=False
        )
        self.db.commit()

        with PageRasterizer(file_bytes, scale=self.render_scale) as rasterizer:
            result = IngestionResult(total=rasterizer.page_count)

            for page_number in range(1, result.total + 1):
                # Throttle provider calls; pages are never processed in parallel
                if self.page_delay > 0:
                    self.sleep(self.page_delay)

                try:
                    if self._process_page(manual_id, rasterizer, page_number):
                        result.processed += 1
                    else:
                        result.failed += 1
                except Exception as e:
                    self.db.rollback()
                    result.failed += 1
                    logger.error(f"Page {page_number} of manual {manual_id} failed: {e}")

                if on_progress:
                    on_progress(page_number, result.total)

        logger.info(
            f"Image ingestion for manual {manual_id}: {result.processed}/{result.total} "
            f"pages embedded, {result.failed} failed"
        )
        return result

    def _process_page(self, manual_id: int, rasterizer: PageRasterizer, page_number: int) -> bool:
        image = rasterizer.render(page_number)

        key = page_image_key(manual_id, page_number)
        self.storage.upload(PAGE_IMAGES_BUCKET, key, image, upsert=True)
        image_url = self.storage.public_url(PAGE_IMAGES_BUCKET, key)

        try:
            description = self.provider.describe_image(image, PAGE_IMAGE_MIME_TYPE)
        except FleetDeskError as e:
            logger.warning(f"Description of page {page_number} of manual {manual_id} failed: {e}")
            return False

        embedding = generate_embedding(self.provider, description)
        self.db.add(ManualPageImage(
            manual_id=manual_id,
            page_number=page_number,
            image_url=image_url,
            image_description=description,
            embedding=embedding,
            metadata_={"source": "page_image", "storage_key": key},
            **embedding_signature(self.provider),
        ))
        self.db.commit()
        return True


def run_manual_processing(
    session_factory,
    storage: ObjectStorage,
    manual_id: int,
    process_text: bool = True,
    process_images: bool = False,
    provider_factory: Callable[..., AIProvider] = build_provider,
    page_delay: float = settings.PAGE_PROCESSING_DELAY,
    on_progress: Optional[ProgressCallback] = None,
) -> dict:
    """Process a manual that was already claimed with ``claim_manual``.

    Runs in a background task with its own session; the manual ends in
    ``done`` or ``failed`` whatever happens.
    """
    db = session_factory()
    summary = {"manual_id": manual_id, "text": None, "images": None}
    status = "failed"
    try:
        manual = db.get(Manual, manual_id)
        if manual is None:
            raise LookupError(f"Manual {manual_id} not found")

        file_bytes = storage.download(MANUALS_BUCKET, manual.file_path)
        provider = provider_factory(load_provider_config(db, manual.company_id))

        results = []
        if process_text:
            text_result = ManualTextIngestor(db, provider).process_manual(manual_id, file_bytes)
            summary["text"] = text_result.to_dict()
            results.append(text_result)
        if process_images:
            def page_done(page_number: int, total: int) -> None:
                refresh_claim(db, manual_id)
                if on_progress:
                    on_progress(page_number, total)

            image_result = ManualImageIngestor(
                db, provider, storage, page_delay=page_delay
            ).process_manual_images(manual_id, file_bytes, page_done)
            summary["images"] = image_result.to_dict()
            results.append(image_result)

        nothing_stored = all(r.total and not r.processed for r in results) if results else False
        status = "failed" if nothing_stored else "done"
    except Exception as e:
        db.rollback()
        logger.error(f"Processing of manual {manual_id} failed: {e}")
        summary["error"] = str(e)
    finally:
        finish_manual(db, manual_id, status)
        db.close()

    summary["status"] = status
    return summary

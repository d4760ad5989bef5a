#!/usr/bin/env python3
"""
Upload a local PDF manual for a company and process it synchronously.

Uses the company's saved AI settings, exactly like the API does.

Usage:
    python backend/scripts/ingest_manual.py --company-id 1 path/to/manual.pdf --images
"""
import argparse
import logging
import sys
from pathlib import Path

from app.core.database import SessionLocal
from app.core.exceptions import FleetDeskError
from app.core.logging import configure_logging
from app.services.document_ingestion import claim_manual, run_manual_processing
from app.services.manuals import InvalidManualFile, create_manual
from app.services.storage import get_storage

logger = logging.getLogger("ingest_manual")


def report_progress(page: int, total: int) -> None:
    logger.info(f"Page {page}/{total} done")


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest a PDF manual")
    parser.add_argument("pdf", type=Path, help="PDF file to ingest")
    parser.add_argument("--company-id", type=int, required=True)
    parser.add_argument("--title")
    parser.add_argument("--machine-type")
    parser.add_argument("--brand")
    parser.add_argument("--model")
    parser.add_argument("--no-text", action="store_true", help="Skip text chunk embeddings")
    parser.add_argument("--images", action="store_true", help="Also embed page images")
    parser.add_argument("--page-delay", type=float, default=None, help="Seconds between pages")
    args = parser.parse_args()

    configure_logging()

    if not args.pdf.is_file():
        logger.error(f"File not found: {args.pdf}")
        return 1

    storage = get_storage()
    db = SessionLocal()
    try:
        manual = create_manual(
            db, storage, args.company_id, args.pdf.name, args.pdf.read_bytes(),
            args.title, args.machine_type, args.brand, args.model,
        )
        claim_manual(db, manual.id)
        manual_id = manual.id
    except (InvalidManualFile, FleetDeskError) as e:
        logger.error(f"Could not create manual: {e}")
        return 1
    finally:
        db.close()

    kwargs = {}
    if args.page_delay is not None:
        kwargs["page_delay"] = args.page_delay

    summary = run_manual_processing(
        SessionLocal,
        storage,
        manual_id,
        process_text=not args.no_text,
        process_images=args.images,
        on_progress=report_progress,
        **kwargs,
    )
    logger.info(f"Manual {manual_id} finished with status '{summary['status']}'")
    for kind in ("text", "images"):
        if summary.get(kind):
            logger.info(f"  {kind}: {summary[kind]}")
    if summary.get("error"):
        logger.error(f"  error: {summary['error']}")
    return 0 if summary["status"] == "done" else 1


if __name__ == "__main__":
    sys.exit(main())

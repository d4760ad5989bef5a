"""Text extraction from manual PDFs."""
import io
import logging

from pypdf import PdfReader

from app.core.exceptions import ManualReadError

logger = logging.getLogger(__name__)

UNREADABLE_MESSAGE = "Unable to read PDF. The file may be corrupted or password protected."


def _open_pdf(file_bytes: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(file_bytes))
    except Exception as e:
        logger.error(f"PDF parse failed: {e}")
        raise ManualReadError(UNREADABLE_MESSAGE) from e

    if reader.is_encrypted:
        raise ManualReadError(UNREADABLE_MESSAGE)
    return reader


def extract_text(file_bytes: bytes) -> str:
    """Extract the text of every page, in order.

    Whitespace inside a page is collapsed to single spaces and pages are
    joined with newlines.
    """
    reader = _open_pdf(file_bytes)
    pages = []
    try:
        for page in reader.pages:
            page_text = page.extract_text() or ""
            pages.append(" ".join(page_text.split()))
    except Exception as e:
        logger.error(f"PDF text extraction failed: {e}")
        raise ManualReadError(UNREADABLE_MESSAGE) from e

    return "\n".join(pages).strip()


def count_pages(file_bytes: bytes) -> int:
    """Number of pages in the PDF."""
    return len(_open_pdf(file_bytes).pages)

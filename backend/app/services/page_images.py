"""Page rasterization for manual PDFs."""
import logging
from typing import Optional

import fitz  # PyMuPDF

from app.core.config import settings
from app.core.exceptions import ManualReadError

logger = logging.getLogger(__name__)

# Bucket holding rendered pages, one folder per manual
PAGE_IMAGES_BUCKET = "manual-pages"
PAGE_IMAGE_MIME_TYPE = "image/jpeg"


def page_image_key(manual_id: int, page_number: int) -> str:
    """Storage key of a rendered page: ``{manual_id}/page_{n}.jpg``."""
    return f"{manual_id}/page_{page_number}.jpg"


def page_image_prefix(manual_id: int) -> str:
    return f"{manual_id}/"


class PageRasterizer:
    """Renders the pages of an in-memory PDF to JPEG.

    Upscaled rendering gives the vision model legible small print; 2x keeps
    typical manual pages around 1200x1600 px.
    """

    def __init__(self, file_bytes: bytes, scale: float = settings.PAGE_RENDER_SCALE, jpeg_quality: int = 85):
        try:
            self.doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as e:
            logger.error(f"PDF open failed: {e}")
            raise ManualReadError("Unable to read PDF. The file may be corrupted.") from e

        if self.doc.needs_pass:
            self.doc.close()
            raise ManualReadError("Unable to read PDF. The file is password protected.")

        self.matrix = fitz.Matrix(scale, scale)
        self.jpeg_quality = jpeg_quality

    @property
    def page_count(self) -> int:
        return len(self.doc)

    def render(self, page_number: int) -> bytes:
        """Render a 1-based page number to JPEG bytes."""
        if page_number < 1 or page_number > len(self.doc):
            raise ValueError(f"Page {page_number} not found in document")
        page = self.doc[page_number - 1]
        pix = page.get_pixmap(matrix=self.matrix, alpha=False)
        return pix.tobytes(output="jpeg", jpg_quality=self.jpeg_quality)

    def close(self) -> None:
        self.doc.close()

    def __enter__(self) -> "PageRasterizer":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None

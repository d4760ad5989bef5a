"""Fixed-size sliding window chunking for manual text."""
from typing import List

from app.core.config import settings


def chunk_text(
    text: str,
    chunk_size: int = settings.CHUNK_SIZE,
    overlap: int = settings.CHUNK_OVERLAP,
    min_length: int = settings.MIN_CHUNK_LENGTH,
) -> List[str]:
    """
    Split text into overlapping windows of ``chunk_size`` characters.

    Each window starts ``chunk_size - overlap`` characters after the previous
    one; the last window is the first one that reaches the end of the text.
    Windows with fewer than ``min_length`` non-blank characters are dropped.
    Boundaries ignore sentences and paragraphs, so the result only depends on
    the input and the parameters.

    Args:
        text: Text to chunk
        chunk_size: Window size in characters
        overlap: Characters shared by consecutive windows
        min_length: Minimum stripped length of a kept window

    Returns:
        List of text chunks
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be between 0 and chunk_size - 1")

    if not text:
        return []

    step = chunk_size - overlap
    chunks = []
    start = 0

    while start < len(text):
        end = start + chunk_size
        chunk = text[start:end]
        if len(chunk.strip()) >= min_length:
            chunks.append(chunk)
        if end >= len(text):
            break
        start += step

    return chunks

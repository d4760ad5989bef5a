"""Embedding helpers shared by ingestion and retrieval."""
from typing import Dict, List, Sequence

from app.core.exceptions import ProviderError
from app.services.ai_providers import AIProvider


def generate_embedding(provider: AIProvider, text: str) -> List[float]:
    """Generate the embedding for a single text with the configured provider."""
    embedding = provider.embed(text)
    if not embedding:
        raise ProviderError(f"{provider.name} returned an empty embedding")
    return embedding


def embedding_signature(provider: AIProvider) -> Dict[str, str]:
    """Columns identifying which model produced a stored vector."""
    return {
        "embedding_provider": provider.name,
        "embedding_model": provider.embedding_model,
    }


def to_pgvector(embedding: Sequence[float]) -> str:
    """Format a vector as a pgvector literal for raw SQL parameters."""
    return "[" + ",".join(str(x) for x in embedding) + "]"

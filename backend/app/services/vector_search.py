"""
Vector Search Service

Embeds a query with the company's provider and ranks stored manual chunks and
page descriptions through the ``match_manual_embeddings`` SQL function.
Retrieval is best effort: when the query embedding or the search call fails
the service returns no matches, and chat carries on without manual context.
"""
import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ProviderError
from app.services.ai_providers import AIProvider
from app.services.embeddings import generate_embedding, to_pgvector

logger = logging.getLogger(__name__)

MATCH_SQL = text("""
    SELECT id, manual_id, manual_title, source, page_number, content, image_url, similarity
    FROM match_manual_embeddings(
        CAST(:query_embedding AS vector), :match_threshold, :match_count,
        :company_id, :provider, :model
    )
""")


@dataclass
class SearchMatch:
    """A chunk or page description ranked against the query."""
    id: int
    manual_id: int
    manual_title: str
    source: str  # "text" or "page"
    content: str
    similarity: float
    page_number: Optional[int] = None
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class VectorSearchService:
    def __init__(
        self,
        db: Session,
        provider: AIProvider,
        company_id: Optional[int] = None,
        match_threshold: float = settings.RAG_MATCH_THRESHOLD,
        match_count: int = settings.RAG_MATCH_COUNT,
    ):
        self.db = db
        self.provider = provider
        self.company_id = company_id
        self.match_threshold = match_threshold
        self.match_count = match_count

    def search(self, query: str) -> List[SearchMatch]:
        """
        Find the manual content most similar to ``query``.

        Only rows embedded by the provider's current embedding model are
        compared, since vectors of different models are not comparable.

        Returns:
            Matches above the threshold, most similar first
        """
        if not query or not query.strip():
            return []

        try:
            query_embedding = generate_embedding(self.provider, query)
        except ProviderError as e:
            logger.warning(f"Query embedding failed, searching without context: {e}")
            return []

        try:
            rows = self._match(query_embedding)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Vector search failed: {e}")
            return []

        matches = [
            SearchMatch(
                id=r["id"],
                manual_id=r["manual_id"],
                manual_title=r["manual_title"],
                source=r["source"],
                content=r["content"],
                similarity=float(r["similarity"]),
                page_number=r["page_number"],
                image_url=r["image_url"],
            )
            for r in rows
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug(f"Vector search returned {len(matches)} matches for: {query[:50]}...")
        return matches

    def _match(self, query_embedding: List[float]) -> list:
        return self.db.execute(
            MATCH_SQL,
            {
                "query_embedding": to_pgvector(query_embedding),
                "match_threshold": self.match_threshold,
                "match_count": self.match_count,
                "company_id": self.company_id,
                "provider": self.provider.name,
                "model": self.provider.embedding_model,
            },
        ).mappings().all()


def build_context(matches: List[SearchMatch]) -> str:
    """Render matches as the context block injected into the system instruction."""
    blocks = []
    for match in matches:
        if match.page_number:
            label = f"[{match.manual_title}, page {match.page_number}]"
        else:
            label = f"[{match.manual_title}]"
        blocks.append(f"{label}\n{match.content.strip()}")
    return "\n\n---\n\n".join(blocks)

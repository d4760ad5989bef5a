from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_provider
from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.manual import SearchMatchResponse, SearchRequest, SearchResponse
from app.services.ai_providers import AIProvider
from app.services.vector_search import VectorSearchService

router = APIRouter()


@router.post("/", response_model=SearchResponse)
def search_manuals(
    request: SearchRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: AIProvider = Depends(get_provider),
):
    """Semantic search over the company's manual chunks and page descriptions."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query cannot be empty")

    matches = VectorSearchService(db, provider, current_user.company_id).search(request.query)
    return SearchResponse(
        query=request.query,
        matches=[SearchMatchResponse(**m.to_dict()) for m in matches],
    )

"""Machine-focused chat grounded on the company's manuals, with Redis-backed history."""
import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_provider
from app.api.machines import get_company_machine
from app.core.database import get_db
from app.core.redis_client import ChatSessionStore, get_chat_store
from app.core.security import get_current_user
from app.models.machine import Machine
from app.models.user import User
from app.schemas.chat import ChatHistoryResponse, ChatRequest, ChatResponse, ChatSessionSummary
from app.schemas.manual import SearchMatchResponse
from app.services.ai_providers import AIProvider
from app.services.assistant import answer_chat
from app.services.vector_search import VectorSearchService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: AIProvider = Depends(get_provider),
    store: ChatSessionStore = Depends(get_chat_store),
):
    """
    Answer a message about one machine.

    History is kept per session; the latest user message is used to retrieve
    manual excerpts when ``use_manuals`` is set. A failed retrieval only drops
    the context, while provider errors on the reply itself propagate.
    """
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message content is required")

    machine = get_company_machine(db, request.machine_id, current_user.company_id)

    session_id = request.session_id or str(uuid.uuid4())
    if store.get_machine_id(current_user.id, session_id) not in (None, machine.id):
        # Switching machines starts a fresh conversation
        store.clear_session(current_user.id, session_id)

    history = [
        *store.get_history(current_user.id, session_id),
        {"role": "user", "content": request.message},
    ]

    retriever = None
    if request.use_manuals:
        retriever = VectorSearchService(db, provider, current_user.company_id)

    answer = answer_chat(provider, machine, history, retriever)

    store.append_message(current_user.id, session_id, machine.id, "user", request.message, title=request.title)
    store.append_message(current_user.id, session_id, machine.id, "assistant", answer.reply)

    return ChatResponse(
        session_id=session_id,
        message=answer.reply,
        sources=[SearchMatchResponse(**m.to_dict()) for m in answer.sources],
    )


@router.get("", response_model=List[ChatSessionSummary])
def list_chat_sessions(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: ChatSessionStore = Depends(get_chat_store),
):
    """The current user's sessions, most recently updated first."""
    sessions = store.list_sessions(current_user.id, limit=limit)

    machine_ids = {s["machine_id"] for s in sessions if s["machine_id"] is not None}
    machines = {}
    if machine_ids:
        machines = {
            m.id: m
            for m in db.query(Machine).filter(
                Machine.id.in_(machine_ids),
                Machine.company_id == current_user.company_id,
            )
        }

    summaries = []
    for session in sessions:
        machine = machines.get(session["machine_id"])
        summaries.append(ChatSessionSummary(
            **session,
            machine_name=machine.name if machine else None,
            machine_model=machine.model if machine else None,
        ))
    return summaries


@router.get("/{session_id}", response_model=ChatHistoryResponse)
def get_chat_history(
    session_id: str,
    current_user: User = Depends(get_current_user),
    store: ChatSessionStore = Depends(get_chat_store),
):
    session = store.get_session(current_user.id, session_id) or {}
    return ChatHistoryResponse(
        session_id=session_id,
        machine_id=session.get("machine_id"),
        title=session.get("title"),
        messages=session.get("messages", []),
    )


@router.delete("/{session_id}")
def clear_chat_history(
    session_id: str,
    current_user: User = Depends(get_current_user),
    store: ChatSessionStore = Depends(get_chat_store),
):
    store.clear_session(current_user.id, session_id)
    return {"message": "Chat history cleared", "session_id": session_id}

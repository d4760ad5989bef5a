"""Support tickets and AI diagnostic analysis."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional

from app.api.deps import get_provider
from app.api.machines import get_company_machine
from app.core.database import get_db
from app.core.exceptions import FleetDeskError
from app.core.security import get_current_user
from app.models.ticket import SupportTicket
from app.models.user import User
from app.schemas.ticket import (
    AnalysisRequest,
    ProblemReport,
    TicketCreate,
    TicketResponse,
    TicketStatusUpdate,
)
from app.services.ai_providers import AIProvider
from app.services.assistant import DiagnosticReport, analyze_problem

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_ticket(db: Session, ticket_id: int, company_id: int) -> SupportTicket:
    ticket = db.get(SupportTicket, ticket_id)
    if not ticket or ticket.company_id != company_id:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.get("/", response_model=List[TicketResponse])
def list_tickets(
    status: Optional[str] = None,
    machine_id: Optional[int] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(SupportTicket).filter(SupportTicket.company_id == current_user.company_id)
    if status:
        query = query.filter(SupportTicket.status == status)
    if machine_id:
        query = query.filter(SupportTicket.machine_id == machine_id)
    return query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).limit(limit).all()


@router.get("/stats/summary")
def get_ticket_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    rows = (
        db.query(SupportTicket.status, func.count(SupportTicket.id))
        .filter(SupportTicket.company_id == current_user.company_id)
        .group_by(SupportTicket.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    return {"total": sum(by_status.values()), "by_status": by_status}


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_ticket(db, ticket_id, current_user.company_id)


@router.post("/", response_model=TicketResponse, status_code=201)
def create_ticket(
    ticket: TicketCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    get_company_machine(db, ticket.machine_id, current_user.company_id)
    db_ticket = SupportTicket(
        company_id=current_user.company_id,
        created_by=current_user.id,
        **ticket.model_dump(),
    )
    db.add(db_ticket)
    db.commit()
    db.refresh(db_ticket)
    return db_ticket


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
def update_ticket_status(
    ticket_id: int,
    update: TicketStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ticket = _get_ticket(db, ticket_id, current_user.company_id)
    ticket.status = update.status
    db.commit()
    db.refresh(ticket)
    return ticket


@router.post("/analyze", response_model=DiagnosticReport)
def analyze(
    request: AnalysisRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: AIProvider = Depends(get_provider),
):
    """Diagnostic analysis without opening a ticket. Provider errors propagate."""
    machine = get_company_machine(db, request.machine_id, current_user.company_id)
    return analyze_problem(provider, machine, request.problem_description)


@router.post("/report", response_model=TicketResponse, status_code=201)
def report_problem(
    report: ProblemReport,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: AIProvider = Depends(get_provider),
):
    """
    Open a ticket with an AI diagnostic attached.

    The ticket is created even when the analysis fails; the failure is kept
    in ``ai_analysis`` as ``{"error": ...}`` so the technician still sees it.
    """
    machine = get_company_machine(db, report.machine_id, current_user.company_id)

    try:
        analysis = analyze_problem(provider, machine, report.problem_description).model_dump()
    except FleetDeskError as e:
        logger.error(f"Analysis for machine {machine.id} failed: {e}")
        analysis = {"error": e.message}

    ticket = SupportTicket(
        company_id=current_user.company_id,
        created_by=current_user.id,
        ai_analysis=analysis,
        status="open",
        **report.model_dump(),
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.machine import Machine
from app.models.manual import Manual
from app.models.ticket import SupportTicket
from app.models.user import User
from app.schemas.ticket import TicketResponse

router = APIRouter()


def _count_by(db: Session, column, company_column, company_id: int) -> dict:
    rows = db.query(column, func.count()).filter(company_column == company_id).group_by(column).all()
    return {key: count for key, count in rows}


@router.get("/")
def get_dashboard(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Fleet overview: machines, tickets and manuals of the caller's company."""
    company_id = current_user.company_id

    machines = _count_by(db, Machine.status, Machine.company_id, company_id)
    tickets = _count_by(db, SupportTicket.status, SupportTicket.company_id, company_id)
    manuals = _count_by(db, Manual.processing_status, Manual.company_id, company_id)

    users = db.query(User).filter(User.company_id == company_id, User.is_active.is_(True)).count()

    recent = (
        db.query(SupportTicket)
        .filter(SupportTicket.company_id == company_id)
        .order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
        .limit(5)
        .all()
    )

    return {
        "machines": {
            "total": sum(machines.values()),
            "operational": machines.get("operational", 0),
            "stopped": machines.get("stopped", 0),
            "by_status": machines,
        },
        "tickets": {
            "total": sum(tickets.values()),
            "open": tickets.get("open", 0) + tickets.get("in_progress", 0),
            "by_status": tickets,
        },
        "manuals": {"total": sum(manuals.values()), "by_status": manuals},
        "users": users,
        "recent_tickets": [TicketResponse.model_validate(t) for t in recent],
    }

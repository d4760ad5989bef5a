from app.models.company import Company
from app.models.user import User
from app.models.machine import Machine
from app.models.ticket import SupportTicket
from app.models.manual import Manual, ManualChunk, ManualPageImage

__all__ = [
    "Company", "User", "Machine", "SupportTicket",
    "Manual", "ManualChunk", "ManualPageImage",
]

from app.schemas.company import CompanyUpdate, CompanyResponse, AISettingsUpdate, AISettingsResponse
from app.schemas.user import UserCreate, UserUpdate, UserResponse
from app.schemas.machine import MachineCreate, MachineUpdate, MachineResponse
from app.schemas.ticket import TicketCreate, ProblemReport, TicketStatusUpdate, TicketResponse
from app.schemas.manual import ManualResponse, ManualDetail, SearchRequest, SearchResponse
from app.schemas.chat import ChatRequest, ChatResponse

__all__ = [
    "CompanyUpdate", "CompanyResponse", "AISettingsUpdate", "AISettingsResponse",
    "UserCreate", "UserUpdate", "UserResponse",
    "MachineCreate", "MachineUpdate", "MachineResponse",
    "TicketCreate", "ProblemReport", "TicketStatusUpdate", "TicketResponse",
    "ManualResponse", "ManualDetail", "SearchRequest", "SearchResponse",
    "ChatRequest", "ChatResponse",
]

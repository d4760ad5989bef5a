from pydantic import BaseModel
from datetime import datetime
from typing import Literal, Optional

MachineStatus = Literal["operational", "maintenance", "stopped"]


class MachineBase(BaseModel):
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    machine_type: Optional[str] = None
    serial_number: Optional[str] = None
    year: Optional[int] = None
    status: MachineStatus = "operational"
    location: Optional[str] = None
    hours_worked: float = 0


class MachineCreate(MachineBase):
    pass


class MachineUpdate(BaseModel):
    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    machine_type: Optional[str] = None
    serial_number: Optional[str] = None
    year: Optional[int] = None
    status: Optional[MachineStatus] = None
    location: Optional[str] = None
    hours_worked: Optional[float] = None


class MachineResponse(MachineBase):
    id: int
    company_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MachineSummary(BaseModel):
    id: int
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    machine_type: Optional[str] = None

    class Config:
        from_attributes = True

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base


class Machine(Base):
    __tablename__ = "machines"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    brand = Column(String(100))
    model = Column(String(100))
    machine_type = Column(String(100))  # excavator, tractor, truck, ...
    serial_number = Column(String(100))
    year = Column(Integer)

    status = Column(String(20), nullable=False, default="operational")  # operational, maintenance, stopped
    location = Column(String(200))
    hours_worked = Column(Float, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

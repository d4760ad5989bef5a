from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.machine import Machine
from app.models.user import User
from app.schemas.machine import MachineCreate, MachineUpdate, MachineResponse

router = APIRouter()


def get_company_machine(db: Session, machine_id: int, company_id: int) -> Machine:
    machine = db.get(Machine, machine_id)
    if not machine or machine.company_id != company_id:
        raise HTTPException(status_code=404, detail="Machine not found")
    return machine


@router.get("/", response_model=List[MachineResponse])
def list_machines(
    status: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Machine).filter(Machine.company_id == current_user.company_id)
    if status:
        query = query.filter(Machine.status == status)
    if search:
        query = query.filter(Machine.name.ilike(f"%{search}%"))
    return query.order_by(Machine.name).all()


@router.get("/stats/summary")
def get_machine_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Machine counts per status."""
    rows = (
        db.query(Machine.status, func.count(Machine.id))
        .filter(Machine.company_id == current_user.company_id)
        .group_by(Machine.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    return {"total": sum(by_status.values()), "by_status": by_status}


@router.get("/{machine_id}", response_model=MachineResponse)
def get_machine(machine_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return get_company_machine(db, machine_id, current_user.company_id)


@router.post("/", response_model=MachineResponse, status_code=201)
def create_machine(
    machine: MachineCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db_machine = Machine(company_id=current_user.company_id, **machine.model_dump())
    db.add(db_machine)
    db.commit()
    db.refresh(db_machine)
    return db_machine


@router.patch("/{machine_id}", response_model=MachineResponse)
def update_machine(
    machine_id: int,
    changes: MachineUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    machine = get_company_machine(db, machine_id, current_user.company_id)
    for key, value in changes.model_dump(exclude_unset=True).items():
        setattr(machine, key, value)
    db.commit()
    db.refresh(machine)
    return machine


@router.delete("/{machine_id}")
def delete_machine(
    machine_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    machine = get_company_machine(db, machine_id, current_user.company_id)
    db.delete(machine)
    db.commit()
    return {"message": "Machine deleted"}

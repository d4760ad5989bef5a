from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from app.core.database import get_db
from app.core.security import get_current_user, get_password_hash, require_admin
from app.models.user import User
from app.schemas.user import UserCreate, UserUpdate, UserResponse

router = APIRouter()


@router.get("/", response_model=List[UserResponse])
def list_users(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """List the users of the caller's company."""
    return (
        db.query(User)
        .filter(User.company_id == current_user.company_id)
        .order_by(User.full_name)
        .all()
    )


@router.post("/", response_model=UserResponse, status_code=201)
def create_user(
    user: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Add a user to the admin's company."""
    if len(user.password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    if db.query(User).filter(User.email == user.email).first():
        raise HTTPException(status_code=400, detail="User already exists")

    db_user = User(
        company_id=admin.company_id,
        hashed_password=get_password_hash(user.password),
        **user.model_dump(exclude={"password"}),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


@router.patch("/me", response_model=UserResponse)
def update_profile(
    changes: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update the caller's own profile."""
    update_data = changes.model_dump(exclude_unset=True)
    password = update_data.pop("password", None)
    if password:
        if len(password) < 8:
            raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
        current_user.hashed_password = get_password_hash(password)

    for key, value in update_data.items():
        setattr(current_user, key, value)

    db.commit()
    db.refresh(current_user)
    return current_user


@router.delete("/{user_id}")
def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Deactivate a user of the admin's company."""
    user = db.get(User, user_id)
    if not user or user.company_id != admin.company_id:
        raise HTTPException(status_code=404, detail="User not found")
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate yourself")

    user.is_active = False
    db.commit()
    return {"message": "User deactivated"}

"""Shared FastAPI dependencies for the AI-backed endpoints."""
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.services.ai_providers import AIProvider, build_provider
from app.services.provider_config import load_provider_config


def get_provider_factory() -> Callable[..., AIProvider]:
    return build_provider


def get_provider(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider_factory: Callable[..., AIProvider] = Depends(get_provider_factory),
) -> AIProvider:
    """Provider for the caller's company, built from freshly read settings."""
    return provider_factory(load_provider_config(db, current_user.company_id))

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Any, Callable, Dict

from app.api.deps import get_provider_factory
from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.company import Company
from app.models.user import User
from app.schemas.company import (
    AISettingsResponse,
    AISettingsUpdate,
    CompanyResponse,
    CompanyUpdate,
    ModelListRequest,
)
from app.services.ai_providers import AIProvider
from app.services.provider_config import (
    ProviderConfig,
    config_from_settings,
    load_provider_config,
    save_provider_config,
)

router = APIRouter()


def _ai_settings_response(config: ProviderConfig) -> AISettingsResponse:
    return AISettingsResponse(
        provider=config.provider,
        family=config.family.value,
        base_url=config.base_url,
        model=config.model,
        embedding_model=config.embedding_model,
        system_prompt=config.system_prompt,
        has_api_key=bool(config.api_key),
    )


def _get_company(db: Session, user: User) -> Company:
    company = db.get(Company, user.company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


@router.get("/", response_model=CompanyResponse)
def get_company(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_company(db, current_user)


@router.patch("/", response_model=CompanyResponse)
def update_company(
    changes: CompanyUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    company = _get_company(db, admin)
    for key, value in changes.model_dump(exclude_unset=True).items():
        setattr(company, key, value)
    db.commit()
    db.refresh(company)
    return company


@router.get("/ai-settings", response_model=AISettingsResponse)
def get_ai_settings(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Current AI settings. The API key itself is never returned."""
    return _ai_settings_response(load_provider_config(db, current_user.company_id, require_key=False))


@router.put("/ai-settings", response_model=AISettingsResponse)
def save_ai_settings(
    changes: AISettingsUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    config = save_provider_config(db, admin.company_id, changes.model_dump(exclude_unset=True))
    return _ai_settings_response(config)


@router.post("/ai-settings/models")
def list_models(
    request: ModelListRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    provider_factory: Callable[..., AIProvider] = Depends(get_provider_factory),
) -> Dict[str, Any]:
    """List the models a provider offers, using unsaved credentials when given."""
    company = _get_company(db, admin)
    candidate = dict(company.ai_settings or {})
    for key, value in request.model_dump(exclude_unset=True).items():
        if value:
            candidate[key] = value

    config = config_from_settings(candidate)
    if not config.api_key:
        raise HTTPException(status_code=400, detail="API key is required to list models")
    return provider_factory(config).list_models()

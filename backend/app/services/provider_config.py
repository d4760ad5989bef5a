"""Per-company AI provider settings.

The settings are stored as JSON on ``Company.ai_settings`` and read fresh at
the start of every operation that talks to a provider. The provider family is
resolved here, once, so callers work against ``ProviderFamily`` rather than the
free-form provider label a user typed in the settings screen.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from string import Template
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ProviderConfigError
from app.models.company import Company

logger = logging.getLogger(__name__)


DEFAULT_PROMPT = """You are an expert in agricultural and heavy machinery maintenance, with hands-on experience in diagnosing, repairing and servicing tractors, harvesters, excavators and implements.

You work inside a technical support system that consults manufacturer manuals to help mechanics solve problems.

Guidelines:
- Only use information found in the technical manuals available in the system
- Base the diagnosis on the reported symptoms
- List possible causes in order of likelihood
- Describe verification and correction procedures step by step
- Use professional, objective and safe technical language
- When the information is not in the manual, say so explicitly
- Never invent procedures
- Always name the component or system involved

MACHINE: ${machine_brand} ${machine_model}
PROBLEM: ${problem_description}

Return JSON with:
- possible_causes (array)
- suggested_solutions (array)
- parts_to_check (array)
- checklist (array)
"""


class ProviderFamily(str, Enum):
    """The two supported API shapes."""
    GOOGLE = "google"
    OPENAI = "openai"

    @classmethod
    def from_label(cls, provider: Optional[str]) -> "ProviderFamily":
        label = (provider or "").lower()
        if "google" in label or "gemini" in label:
            return cls.GOOGLE
        # OpenAI, Groq, OpenRouter and other compatible gateways
        return cls.OPENAI


@dataclass(frozen=True)
class ProviderConfig:
    family: ProviderFamily
    provider: str
    base_url: str
    api_key: str
    model: str
    system_prompt: str

    @property
    def embedding_model(self) -> str:
        if self.family == ProviderFamily.GOOGLE:
            return settings.GOOGLE_EMBEDDING_MODEL
        return settings.OPENAI_EMBEDDING_MODEL


def _default_base_url(family: ProviderFamily) -> str:
    if family == ProviderFamily.GOOGLE:
        return settings.DEFAULT_GOOGLE_BASE_URL
    return settings.DEFAULT_OPENAI_BASE_URL


def config_from_settings(ai_settings: Optional[dict]) -> ProviderConfig:
    """Build a config from a stored ``ai_settings`` dict, filling defaults."""
    ai_settings = ai_settings or {}
    provider = ai_settings.get("provider") or settings.DEFAULT_AI_PROVIDER
    family = ProviderFamily.from_label(provider)
    base_url = (ai_settings.get("base_url") or _default_base_url(family)).rstrip("/")

    return ProviderConfig(
        family=family,
        provider=provider,
        base_url=base_url,
        api_key=ai_settings.get("api_key") or "",
        model=ai_settings.get("model") or settings.DEFAULT_CHAT_MODEL,
        system_prompt=ai_settings.get("system_prompt") or DEFAULT_PROMPT,
    )


def load_provider_config(db: Session, company_id: int, require_key: bool = True) -> ProviderConfig:
    """Read the company's provider configuration. Never cached."""
    company = db.get(Company, company_id)
    if company is None:
        raise ProviderConfigError("Company not found. Create the company profile first.")

    config = config_from_settings(company.ai_settings)
    if require_key and not config.api_key:
        raise ProviderConfigError(
            "API key not configured. Go to Settings > Artificial Intelligence."
        )
    return config


def save_provider_config(db: Session, company_id: int, updates: dict) -> ProviderConfig:
    """Merge ``updates`` into the stored settings.

    A missing or empty ``api_key`` keeps the stored key, so the settings screen
    can save without ever reading the secret back.
    """
    company = db.get(Company, company_id)
    if company is None:
        raise ProviderConfigError("Company not found. Create the company profile first.")

    current = dict(company.ai_settings or {})
    for key, value in updates.items():
        if key == "api_key" and not value:
            continue
        current[key] = value

    previous = config_from_settings(company.ai_settings)
    if "base_url" not in updates and ProviderFamily.from_label(current.get("provider")) != previous.family:
        # A base URL of the other family would never work
        current.pop("base_url", None)

    company.ai_settings = current
    db.commit()

    config = config_from_settings(current)
    if (previous.family, previous.embedding_model) != (config.family, config.embedding_model):
        logger.warning(
            f"Company {company_id} switched embedding model from "
            f"{previous.family.value}/{previous.embedding_model} to "
            f"{config.family.value}/{config.embedding_model}; existing manuals must be "
            f"reprocessed to be searchable"
        )
    return config


def build_analysis_prompt(
    config: ProviderConfig,
    machine_brand: Optional[str],
    machine_model: Optional[str],
    problem_description: str,
) -> str:
    """Fill the three placeholders of the company's prompt template."""
    return Template(config.system_prompt).safe_substitute(
        machine_brand=machine_brand or "Generic",
        machine_model=machine_model or "Standard",
        problem_description=problem_description,
    )

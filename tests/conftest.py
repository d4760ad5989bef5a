import copy
import os

# Must be set before the app modules read their settings
os.environ["PAGE_PROCESSING_DELAY"] = "0"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"

from types import SimpleNamespace
from typing import List

import fitz
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_provider_factory
from app.core.database import Base, get_db, get_session_factory
from app.core.exceptions import ProviderError
from app.core.redis_client import ChatSessionStore, get_chat_store
from app.core.security import create_user_token
from app.main import app
from app.models.company import Company
from app.models.machine import Machine
from app.models.user import User
from app.services.ai_providers import AIProvider
from app.services.provider_config import ProviderConfig, ProviderFamily, config_from_settings
from app.services.storage import ObjectStorage, get_storage

AI_SETTINGS = {
    "provider": "openai",
    "base_url": "https://api.openai.com/v1",
    "api_key": "sk-test",
    "model": "gpt-4o-mini",
}


def make_pdf(pages: List[str]) -> bytes:
    """Build a PDF with one page per entry; "\\n" starts a new line."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def manual_page_text(label: str, lines: int = 12) -> str:
    return "\n".join(
        f"{label} section {i}: check hydraulic pressure and filter condition."
        for i in range(1, lines + 1)
    )


class FakeProvider(AIProvider):
    """Records calls; failures are injected per method."""

    family = ProviderFamily.OPENAI

    def __init__(self, config: ProviderConfig = None, **kwargs):
        super().__init__(config or config_from_settings(AI_SETTINGS))
        self.embed_calls: List[str] = []
        self.chat_calls: List[tuple] = []
        self.analyze_calls: List[str] = []
        self.describe_calls = 0
        self.analysis = {
            "possible_causes": ["Clogged hydraulic filter"],
            "suggested_solutions": ["Replace the filter"],
            "parts_to_check": ["Hydraulic filter"],
            "checklist": ["Check oil level"],
        }
        self.reply = "Check the hydraulic filter first."
        self.fail_embed_on = set()
        self.fail_describe_on = set()
        self.analyze_error = None
        self.chat_error = None

    def embed(self, text):
        self.embed_calls.append(text)
        if len(self.embed_calls) in self.fail_embed_on:
            raise ProviderError("embedding quota exceeded", upstream_status=429)
        return [float(len(text) % 7 + 1), 1.0, 0.5]

    def analyze(self, prompt):
        self.analyze_calls.append(prompt)
        if self.analyze_error:
            raise self.analyze_error
        return self.analysis

    def chat(self, history, system_instruction):
        self.chat_calls.append((list(history), system_instruction))
        if self.chat_error:
            raise self.chat_error
        return self.reply

    def describe_image(self, image_bytes, mime_type="image/jpeg"):
        self.describe_calls += 1
        if self.describe_calls in self.fail_describe_on:
            raise ProviderError("vision model unavailable", upstream_status=503)
        return f"Diagram of the hydraulic circuit on page {self.describe_calls}"

    def list_models(self):
        return {"data": [{"id": "gpt-4o-mini"}]}


class FakeChatStore(ChatSessionStore):
    """ChatSessionStore backed by a dict instead of Redis."""

    def __init__(self):
        super().__init__()
        self.data = {}
        self.index = {}
        self._seq = 0

    def get(self, key):
        # Redis hands back a fresh copy on every read
        return copy.deepcopy(self.data.get(key))

    def set(self, key, value, ttl=None):
        self.data[key] = copy.deepcopy(value)
        return True

    def delete(self, key):
        return self.data.pop(key, None) is not None

    def _index_add(self, user_id, session_id, updated_at):
        self._seq += 1
        self.index.setdefault(user_id, {})[session_id] = (updated_at, self._seq)

    def _index_members(self, user_id, limit):
        entries = self.index.get(user_id, {})
        return sorted(entries, key=entries.get, reverse=True)[:limit]

    def _index_remove(self, user_id, session_id):
        self.index.get(user_id, {}).pop(session_id, None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return ObjectStorage(root=str(tmp_path / "storage"), public_base_url="http://testserver/api/files")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def chat_store():
    return FakeChatStore()


@pytest.fixture
def company(db):
    company = Company(name="Acme Farms", email="ops@acme.test", ai_settings=dict(AI_SETTINGS))
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _add_user(db, company, email, role):
    user = User(
        company_id=company.id,
        email=email,
        full_name=email.split("@")[0].title(),
        role=role,
        hashed_password="not-a-real-hash",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db, company):
    return _add_user(db, company, "admin@acme.test", "admin")


@pytest.fixture
def technician(db, company):
    return _add_user(db, company, "tech@acme.test", "technician")


@pytest.fixture
def auth_headers(admin):
    return {"Authorization": f"Bearer {create_user_token(admin)}"}


@pytest.fixture
def tech_headers(technician):
    return {"Authorization": f"Bearer {create_user_token(technician)}"}


@pytest.fixture
def machine(db, company):
    machine = Machine(
        company_id=company.id,
        name="Excavator 07",
        brand="Caterpillar",
        model="320D",
        machine_type="excavator",
        status="operational",
    )
    db.add(machine)
    db.commit()
    db.refresh(machine)
    return machine


@pytest.fixture
def other_company_machine(db):
    company = Company(name="Other Co")
    db.add(company)
    db.flush()
    machine = Machine(company_id=company.id, name="Tractor 1", brand="Deere", model="6110J")
    db.add(machine)
    db.commit()
    db.refresh(machine)
    return machine


@pytest.fixture
def client(session_factory, storage, provider, chat_store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_chat_store] = lambda: chat_store
    app.dependency_overrides[get_provider_factory] = lambda: (lambda config, http_client=None: provider)

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def machine_stub():
    return SimpleNamespace(id=1, name="Excavator 07", brand="Caterpillar", model="320D")

"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, tables created/dropped around each test
- HTTPX AsyncClient wired to the same session
- Form factories for the schema shapes most tests need
"""
import os
import tempfile
from typing import AsyncGenerator, Generator

# Configure before any app import reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="sampark-test-uploads-")
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from app.main import app
from app.core.deps import get_db
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.db import models  # noqa: F401
from app.schemas.forms import FormCreate
from app.services import form_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code may commit freely."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Form Factories
# =============================================================================

@pytest.fixture
def lead_form_payload() -> dict:
    """Contact form: name/email/phone/interest plus a WhatsApp consent toggle."""
    return {
        "title": "Contact Us",
        "sections": [
            {
                "id": "s1",
                "title": "About you",
                "order": 0,
                "fields": [
                    {"id": "name", "type": "text", "label": "Full Name", "required": True, "order": 0},
                    {"id": "email", "type": "email", "label": "Email", "order": 1},
                    {"id": "phone", "type": "text", "label": "Phone Number", "order": 2},
                    {"id": "interest", "type": "textarea", "label": "Area of interest", "order": 3},
                    {"id": "wa", "type": "whatsapp_optin", "label": "Join WhatsApp", "order": 4},
                ],
            }
        ],
        "settings": {"collectionTarget": "lead"},
    }


@pytest.fixture
def volunteer_form_payload() -> dict:
    """Volunteer form with a hierarchy selector and a role-dependent section."""
    return {
        "title": "Volunteer Registration",
        "sections": [
            {
                "id": "basics",
                "order": 0,
                "fields": [
                    {"id": "vname", "type": "text", "label": "Name", "required": True},
                    {"id": "mobile", "type": "text", "label": "Mobile"},
                    {"id": "org", "type": "sangha", "label": "Sangha", "required": True},
                    {
                        "id": "role",
                        "type": "select",
                        "label": "Role",
                        "options": ["helper", "lead"],
                    },
                ],
            },
            {
                "id": "leadership",
                "order": 1,
                "conditionalRules": [
                    {"field": "role", "operator": "equals", "value": "lead", "action": "show"}
                ],
                "fields": [
                    {"id": "years", "type": "number", "label": "Years of experience", "required": True},
                ],
            },
        ],
        "settings": {"collectionTarget": "volunteer"},
    }


@pytest.fixture
def make_published_form(db: Session):
    """Create and publish a form from a payload, with optional settings overrides."""

    def _make(payload: dict, **settings):
        payload = {**payload, "settings": {**payload["settings"], **settings}}
        form = form_service.create_form(db, FormCreate.model_validate(payload))
        return form_service.publish_form(db, form)

    return _make


@pytest.fixture
def lead_form(make_published_form, lead_form_payload):
    return make_published_form(lead_form_payload, customSlug="contact")


@pytest.fixture
def volunteer_form(make_published_form, volunteer_form_payload):
    return make_published_form(volunteer_form_payload, customSlug="volunteer")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from shopbot.config import settings
from shopbot.database import build_engine, get_db, init_db
from shopbot.main import app
from shopbot.models import Company

ADMIN = "whatsapp:+5491100000000"
CUSTOMER = "whatsapp:+5491111111111"
API_TOKEN = "test-token"

SHOP_CATALOG = [
    {"id": 1, "name": "Remera", "price": 100},
    {"id": 2, "name": "Gorra", "price": 80},
]


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings; adapters are never configured unless a test says so."""
    monkeypatch.setattr(settings, "admin_number", ADMIN)
    monkeypatch.setattr(settings, "api_token", API_TOKEN)
    monkeypatch.setattr(settings, "default_company_id", "babystepsbots")
    monkeypatch.setattr(settings, "openai_api_key", "")
    monkeypatch.setattr(settings, "ai_global", "on")
    monkeypatch.setattr(settings, "ai_lite_daily_cap", 40)
    monkeypatch.setattr(settings, "ai_pro_daily_cap", 120)
    monkeypatch.setattr(settings, "ai_min_interval_seconds", 6.0)
    monkeypatch.setattr(settings, "ai_rate_limit_consumes_quota", True)
    monkeypatch.setattr(settings, "telegram_bot_token", "")
    monkeypatch.setattr(settings, "telegram_chat_id", "")
    monkeypatch.setattr(settings, "turn_max_attempts", 3)
    return settings


@pytest.fixture
def engine():
    """Fresh in-memory database per test, with the default companies seeded."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def shop(db):
    """Default company with a small, round-priced catalog."""
    company = db.query(Company).filter(Company.id == "babystepsbots").one()
    company.catalog = SHOP_CATALOG
    db.commit()
    return company


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_TOKEN}"}

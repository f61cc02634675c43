import os
from datetime import datetime, timedelta

from cryptography.fernet import Fernet

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SESSION_JWT_SECRET"] = "test-session-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_PRICE_TEAM_MONTHLY"] = "price_team_monthly"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from app.cache import cache  # noqa: E402
from app.database import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ApiKey, Client, Company, User  # noqa: E402
from app.rate_limiter import reset_rate_limits  # noqa: E402
from app.security_utils import generate_api_key, hash_api_key  # noqa: E402


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear_memory()
    yield
    cache.clear_memory()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def company(db):
    company = Company(name="Nordic Strings AB", org_number="556677-8899", email="info@nordicstrings.se")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def user(db, company):
    user = User(
        auth_uid="auth-user-1",
        email="musician@example.com",
        full_name="Test Musician",
        company_id=company.id,
        plan="free",
        locale="sv",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    token = jwt.encode(
        {
            "sub": user.auth_uid,
            "email": user.email,
            "aud": "authenticated",
            "exp": datetime.utcnow() + timedelta(hours=1),
        },
        "test-session-secret",
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_api_key(db, user):
    """Create an active API key for `user` and return the raw key"""

    def _make(scopes: list[str]) -> str:
        raw_key = generate_api_key()
        db.add(
            ApiKey(
                user_id=user.id,
                name="Test key",
                key_hash=hash_api_key(raw_key),
                key_prefix=raw_key[:11],
                scopes=scopes,
                is_active=True,
            )
        )
        db.commit()
        return raw_key

    return _make


@pytest.fixture
def music_client(db, user):
    record = Client(
        user_id=user.id,
        name="Göteborgs Symfoniker",
        org_number="857209-1234",
        email="faktura@gso.se",
        payment_terms=20,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record

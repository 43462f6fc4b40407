import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"  # test-only secret
os.environ["APP_ENV"] = "test"
os.environ["SEED_DEFAULT_USERS"] = "false"
os.environ["PERMISSION_SWEEP_INTERVAL_SECONDS"] = "0"

from procurement.db.db import get_db  # noqa: E402
from procurement.db.identifiers import USER_PREFIX, next_public_id  # noqa: E402
from procurement.db.models import Base, User  # noqa: E402
from procurement.main import app  # noqa: E402
from procurement.security.authz import Identity  # noqa: E402
from procurement.security.security import create_token, hash_password  # noqa: E402
from procurement.services.pengadaan import create_pengadaan  # noqa: E402

# Test database setup
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

PENGADAAN_PAYLOAD = {
    "nama": "Pengadaan Laptop Kantor",
    "kategori": "Barang",
    "deskripsi": "Laptop untuk staf administrasi",
    "vendor": "PT Sumber Makmur",
    "nilai": "Rp 150.000.000",
    "tanggal": "2026-03-01",
    "deadline": "2026-04-01",
    "nama_paket": "Paket TI 2026",
    "tahun_anggaran": "2026",
    "nilai_hps_currency": "idr",
    "nilai_hps_amount": "150,000,000",
}


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory for accounts; every account's password is ``secret123``."""

    def _make(username: str, *, role: str = "user", status: str = "active") -> User:
        user = User(
            id=next_public_id(db_session, User, *USER_PREFIX),
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password("secret123"),
            first_name=username.title(),
            last_name="Tester",
            role=role,
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user("admin", role="admin")


@pytest.fixture
def owner_user(make_user) -> User:
    return make_user("owner")


@pytest.fixture
def other_user(make_user) -> User:
    return make_user("other")


@pytest.fixture
def pengadaan(db_session, owner_user):
    """A draft procurement record created by ``owner_user``."""
    return create_pengadaan(
        db_session,
        data=dict(PENGADAAN_PAYLOAD),
        actor=Identity(owner_user.id, owner_user.role),
        now=NOW,
    )


@pytest.fixture
def auth_headers():
    """Bearer headers for a given account."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def now() -> datetime:
    """Fixed instant services are driven with; grants expire relative to it."""
    return NOW


@pytest.fixture
def pengadaan_payload() -> dict:
    return dict(PENGADAAN_PAYLOAD)

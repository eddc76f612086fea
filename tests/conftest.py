"""
Pytest configuration and fixtures.
Provides test database, client, and common test utilities.
"""

import os
import tempfile

# Settings are read once at import, so the test environment goes first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DISABLE_BOOTSTRAP_USERS", "true")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "1000")
os.environ.setdefault("TOKEN_REVOCATION_BACKEND", "memory")
os.environ.setdefault("FILE_STORAGE_PATH", tempfile.mkdtemp(prefix="nursecred-test-"))

from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402
from sqlmodel.pool import StaticPool  # noqa: E402

from nursecred.api.deps import get_file_storage  # noqa: E402
from nursecred.core.config import settings  # noqa: E402
from nursecred.core.revocation import InMemoryRevocationStore  # noqa: E402
from nursecred.core.roles import UserRole  # noqa: E402
from nursecred.core.security import TokenService, get_token_service  # noqa: E402
from nursecred.db.session import get_session, init_db  # noqa: E402
from nursecred.main import app  # noqa: E402
from nursecred.models.user import User  # noqa: E402
from nursecred.services.file_storage_service import FileStorageService  # noqa: E402
from nursecred.services.user_service import UserService  # noqa: E402

API = settings.API_PREFIX


@pytest.fixture(name="session")
def session_fixture() -> Generator[Session, None, None]:
    """
    Create a test database session.
    Uses an in-memory SQLite database for fast tests.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    with Session(engine) as session:
        yield session

    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="token_service")
def token_service_fixture() -> TokenService:
    """A token service with its own revocation state."""
    return TokenService(
        secret_key=settings.SECRET_KEY,
        revocation_store=InMemoryRevocationStore(),
        algorithm=settings.ALGORITHM,
    )


@pytest.fixture(name="storage")
def storage_fixture(tmp_path) -> FileStorageService:
    return FileStorageService(base_path=str(tmp_path / "storage"))


@pytest.fixture(name="client")
def client_fixture(
    session: Session, token_service: TokenService, storage: FileStorageService
) -> Generator[TestClient, None, None]:
    """
    Create a test client with dependency overrides.
    """

    def get_session_override() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_token_service] = lambda: token_service
    app.dependency_overrides[get_file_storage] = lambda: storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _login(client: TestClient, username: str, password: str) -> str:
    response = client.post(
        f"{API}/auth/login",
        data={"username": username, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


@pytest.fixture(name="nurse")
def nurse_fixture(session: Session) -> User:
    """
    Create a perawat (nurse) account.
    """
    return UserService.create(
        session,
        {
            "username": "nurse",
            "email": "nurse@example.com",
            "password": "nursepassword123",
            "full_name": "Siti Nurhaliza",
            "unit": "ICU",
        },
    )


@pytest.fixture(name="admin")
def admin_fixture(session: Session) -> User:
    """
    Create an administrator account.
    """
    return UserService.create(
        session,
        {
            "username": "admin",
            "email": "admin@example.com",
            "password": "adminpassword123",
            "full_name": "Admin User",
        },
        role=UserRole.ADMIN,
    )


@pytest.fixture(name="head")
def head_fixture(session: Session) -> User:
    """
    Create a kepala-unit (unit head) account.
    """
    return UserService.create(
        session,
        {
            "username": "kepala",
            "email": "kepala@example.com",
            "password": "kepalapassword123",
            "unit": "ICU",
        },
        role=UserRole.KEPALA_UNIT,
    )


@pytest.fixture(name="mitra")
def mitra_fixture(session: Session) -> User:
    return UserService.create(
        session,
        {
            "username": "mitra",
            "email": "mitra@example.com",
            "password": "mitrapassword123",
        },
        role=UserRole.MITRA,
    )


@pytest.fixture(name="nurse_token")
def nurse_token_fixture(client: TestClient, nurse: User) -> str:
    return _login(client, "nurse@example.com", "nursepassword123")


@pytest.fixture(name="admin_token")
def admin_token_fixture(client: TestClient, admin: User) -> str:
    return _login(client, "admin", "adminpassword123")


@pytest.fixture(name="head_token")
def head_token_fixture(client: TestClient, head: User) -> str:
    return _login(client, "kepala", "kepalapassword123")


@pytest.fixture(name="mitra_token")
def mitra_token_fixture(client: TestClient, mitra: User) -> str:
    return _login(client, "mitra", "mitrapassword123")

"""Pytest fixtures for testing"""

import pytest
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from telemed_core.api.dependencies import get_crypto_service
from telemed_core.api.main import create_app
from telemed_core.domain.certificates import STATUS_VALID
from telemed_core.infrastructure.clients.ocsp import SimulatedOcspResponder
from telemed_core.infrastructure.database.models import Base, User
from telemed_core.infrastructure.database.repositories import UserRepository
from telemed_core.infrastructure.database.session import get_db, get_session_factory
from telemed_core.infrastructure.database.unit_of_work import SqlAlchemyUnitOfWork
from telemed_core.infrastructure.memory_store import InMemoryLedger
from telemed_core.services.ledger_engine import LedgerEngine
from telemed_core.services.signature_service import CryptographicService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_user(db: Session) -> Callable[..., User]:
    """Insert and commit a user row"""

    def _seed(
        user_id: str,
        tmc_credits: int = 0,
        superior_doctor_id: Optional[str] = None,
        percentage_from_inferiors: Optional[int] = 10,
        role: str = "doctor",
    ) -> User:
        user = UserRepository(db).create_user(
            user_id,
            name=f"User {user_id}",
            role=role,
            tmc_credits=tmc_credits,
            percentage_from_inferiors=percentage_from_inferiors,
        )
        user.superior_doctor_id = superior_doctor_id
        db.commit()
        return user

    return _seed


@pytest.fixture
def sql_engine(db: Session) -> LedgerEngine:
    """Ledger engine whose units of work run against the test database"""
    return LedgerEngine(SqlAlchemyUnitOfWork(TestingSessionLocal))


@pytest.fixture
def crypto_service() -> CryptographicService:
    """Signature service with no simulated latency and a revocation responder that always answers VÁLIDO"""
    return CryptographicService(
        revocation_checker=SimulatedOcspResponder(delay_seconds=0, statuses=(STATUS_VALID,)),
        token_delay_seconds=0,
    )


@pytest.fixture
def client(db: Session, crypto_service: CryptographicService) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_crypto_service] = lambda: crypto_service
    return TestClient(app)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def engine_mem(ledger: InMemoryLedger) -> LedgerEngine:
    """Ledger engine over the in-memory store"""
    return LedgerEngine(ledger.unit_of_work)

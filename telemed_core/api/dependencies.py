"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker
from telemed_core.config import settings
from telemed_core.infrastructure.clients.ocsp import HttpRevocationChecker, SimulatedOcspResponder
from telemed_core.infrastructure.database.session import get_session_factory
from telemed_core.infrastructure.database.unit_of_work import SqlAlchemyUnitOfWork
from telemed_core.services.ledger_engine import LedgerEngine
from telemed_core.services.signature_service import CryptographicService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_engine(session_factory: sessionmaker = Depends(get_session_factory)) -> LedgerEngine:
    """Provide a ledger engine whose units of work are database transactions"""
    return LedgerEngine(SqlAlchemyUnitOfWork(session_factory))


def get_crypto_service() -> CryptographicService:
    """Provide the signature service, using the revocation service when one is configured"""
    if settings.revocation_service_url:
        return CryptographicService(revocation_checker=HttpRevocationChecker())
    return CryptographicService(revocation_checker=SimulatedOcspResponder())

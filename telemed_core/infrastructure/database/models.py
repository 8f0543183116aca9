"""SQLAlchemy ORM models for the TMC ledger tables"""

from datetime import datetime, timezone
from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
LedgerId = BigInteger().with_variant(Integer, "sqlite")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Platform user; only the ledger columns are mapped here"""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("tmc_credits >= 0", name="tmc_credits_non_negative"),
        CheckConstraint(
            "percentage_from_inferiors IS NULL OR (percentage_from_inferiors BETWEEN 0 AND 100)",
            name="percentage_from_inferiors_range",
        ),
    )

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="visitor")  # admin | patient | doctor | visitor | researcher
    tmc_credits = Column(Integer, nullable=False, default=0)
    balance_version = Column(Integer, nullable=False, default=0)  # Bumped on every balance write
    superior_doctor_id = Column(Text, ForeignKey("users.id"), nullable=True, index=True)
    percentage_from_inferiors = Column(Integer, nullable=True, default=10)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TmcTransaction(Base):
    """Append-only ledger entry; never updated or deleted"""

    __tablename__ = "tmc_transactions"

    id = Column(LedgerId, primary_key=True, autoincrement=True)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Text, nullable=False)  # credit | debit | transfer
    amount = Column(Integer, nullable=False)  # Negative for debits
    reason = Column(Text, nullable=False)
    related_user_id = Column(Text, ForeignKey("users.id"), nullable=True)
    function_used = Column(Text, nullable=True)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    appointment_id = Column(Text, nullable=True)
    medical_record_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TmcFunctionCost(Base):
    """Price list for paid platform features"""

    __tablename__ = "tmc_function_costs"

    id = Column(LedgerId, primary_key=True, autoincrement=True)
    function_name = Column(Text, nullable=False, unique=True)
    cost_in_credits = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=False, default="admin")  # consultation | prescription | data_access | admin
    is_active = Column(Boolean, nullable=False, default=True)
    updated_by = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

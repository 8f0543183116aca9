"""Data access layer for users, ledger transactions and function costs"""

from typing import List, Optional
from sqlalchemy.orm import Session
from telemed_core.infrastructure.database.models import TmcFunctionCost, TmcTransaction, User
from telemed_core.domain.models import NewTransaction, SuperiorLink, Transaction


def to_domain_transaction(row: TmcTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        amount=row.amount,
        reason=row.reason,
        balance_before=row.balance_before,
        balance_after=row.balance_after,
        created_at=row.created_at,
        function_used=row.function_used,
        related_user_id=row.related_user_id,
        appointment_id=row.appointment_id,
        medical_record_id=row.medical_record_id,
    )


class UserRepository:
    """Repository for the ledger-relevant columns of users"""

    def __init__(self, db: Session):
        self.db = db

    def create_user(
        self,
        user_id: str,
        name: str,
        role: str = "visitor",
        tmc_credits: int = 0,
        percentage_from_inferiors: Optional[int] = 10,
    ) -> User:
        """Persist a user row (account management lives outside the ledger)"""
        user = User(
            id=user_id,
            name=name,
            role=role,
            tmc_credits=tmc_credits,
            percentage_from_inferiors=percentage_from_inferiors,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_for_update(self, user_id: str) -> Optional[User]:
        """SELECT ... FOR UPDATE; the lock lives until the session's transaction ends"""
        return (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )


class TransactionRepository:
    """Repository for append-only TMC transactions"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, record: NewTransaction) -> TmcTransaction:
        row = TmcTransaction(
            user_id=record.user_id,
            type=record.type,
            amount=record.amount,
            reason=record.reason,
            function_used=record.function_used,
            related_user_id=record.related_user_id,
            balance_before=record.balance_before,
            balance_after=record.balance_after,
            appointment_id=record.appointment_id,
            medical_record_id=record.medical_record_id,
        )
        self.db.add(row)
        self.db.flush()  # Get ID without committing
        return row

    def get_by_user(self, user_id: str, limit: int = 50) -> List[TmcTransaction]:
        """Fetch recent transactions for a user, newest first"""
        return (
            self.db.query(TmcTransaction)
            .filter(TmcTransaction.user_id == user_id)
            .order_by(TmcTransaction.id.desc())
            .limit(limit)
            .all()
        )


class FunctionCostRepository:
    """Repository for the paid-feature price list"""

    def __init__(self, db: Session):
        self.db = db

    def get_active(self, function_name: str) -> Optional[TmcFunctionCost]:
        return (
            self.db.query(TmcFunctionCost)
            .filter(TmcFunctionCost.function_name == function_name, TmcFunctionCost.is_active.is_(True))
            .first()
        )

    def list_active(self) -> List[TmcFunctionCost]:
        return (
            self.db.query(TmcFunctionCost)
            .filter(TmcFunctionCost.is_active.is_(True))
            .order_by(TmcFunctionCost.category, TmcFunctionCost.function_name)
            .all()
        )

    def upsert(
        self,
        function_name: str,
        cost_in_credits: int,
        updated_by: Optional[str] = None,
        category: str = "admin",
        description: Optional[str] = None,
    ) -> TmcFunctionCost:
        """Create or update a function's price"""
        row = self.db.query(TmcFunctionCost).filter(TmcFunctionCost.function_name == function_name).first()
        if row is None:
            row = TmcFunctionCost(
                function_name=function_name,
                category=category,
                description=description or f"Cost to use {function_name}",
            )
            self.db.add(row)
        row.cost_in_credits = cost_in_credits
        row.updated_by = updated_by
        row.is_active = True
        self.db.flush()
        return row


class SqlLedgerStore:
    """LedgerStore backed by one SQLAlchemy session (one database transaction)"""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.transactions = TransactionRepository(db)
        self.function_costs = FunctionCostRepository(db)

    def get_user_balance_for_update(self, user_id: str) -> Optional[int]:
        user = self.users.get_user_for_update(user_id)
        if user is None:
            return None
        return user.tmc_credits or 0

    def get_user_balance(self, user_id: str) -> Optional[int]:
        user = self.users.get_user(user_id)
        if user is None:
            return None
        return user.tmc_credits or 0

    def set_user_balance(self, user_id: str, new_balance: int) -> None:
        user = self.users.get_user(user_id)
        user.tmc_credits = new_balance
        user.balance_version = (user.balance_version or 0) + 1
        self.db.flush()

    def insert_transaction(self, record: NewTransaction) -> Transaction:
        return to_domain_transaction(self.transactions.insert(record))

    def get_transactions(self, user_id: str, limit: int) -> List[Transaction]:
        return [to_domain_transaction(row) for row in self.transactions.get_by_user(user_id, limit)]

    def user_exists(self, user_id: str) -> bool:
        return self.users.get_user(user_id) is not None

    def get_superior(self, user_id: str) -> Optional[SuperiorLink]:
        user = self.users.get_user(user_id)
        if user is None or not user.superior_doctor_id:
            return None
        superior = self.users.get_user(user.superior_doctor_id)
        percentage = superior.percentage_from_inferiors if superior is not None else None
        return SuperiorLink(superior_id=user.superior_doctor_id, percentage=percentage)

    def set_superior(self, user_id: str, superior_id: Optional[str]) -> None:
        self.users.get_user(user_id).superior_doctor_id = superior_id
        self.db.flush()

    def set_percentage_from_inferiors(self, user_id: str, percentage: int) -> None:
        self.users.get_user(user_id).percentage_from_inferiors = percentage
        self.db.flush()

    def get_function_cost(self, function_name: str) -> Optional[int]:
        row = self.function_costs.get_active(function_name)
        return row.cost_in_credits if row is not None else None

"""Interfaces the core expects from its collaborators (persistence, revocation lookup)"""

from typing import ContextManager, List, Optional, Protocol

from telemed_core.domain.models import NewTransaction, SuperiorLink, Transaction


class LedgerStore(Protocol):
    """
    Persistence collaborator for balances, transactions and the hierarchy.

    A store instance is bound to one unit of work. Locks taken by
    get_user_balance_for_update are held until that unit of work commits or
    rolls back.
    """

    def get_user_balance_for_update(self, user_id: str) -> Optional[int]:
        """Lock the user's balance row and return the balance, or None if the user is absent"""
        ...

    def get_user_balance(self, user_id: str) -> Optional[int]:
        """Unlocked read of the balance, or None if the user is absent"""
        ...

    def set_user_balance(self, user_id: str, new_balance: int) -> None:
        ...

    def insert_transaction(self, record: NewTransaction) -> Transaction:
        ...

    def get_transactions(self, user_id: str, limit: int) -> List[Transaction]:
        """Newest first"""
        ...

    def user_exists(self, user_id: str) -> bool:
        ...

    def get_superior(self, user_id: str) -> Optional[SuperiorLink]:
        ...

    def set_superior(self, user_id: str, superior_id: Optional[str]) -> None:
        ...

    def set_percentage_from_inferiors(self, user_id: str, percentage: int) -> None:
        ...

    def get_function_cost(self, function_name: str) -> Optional[int]:
        """Cost of an active paid function, or None if not configured"""
        ...


class UnitOfWorkFactory(Protocol):
    """Opens an atomic unit of work: commit on normal exit, rollback on exception"""

    def __call__(self) -> ContextManager[LedgerStore]:
        ...


class RevocationChecker(Protocol):
    """Certificate revocation lookup (OCSP or equivalent)"""

    async def check(self, serial_number: str) -> str:
        """Return the certificate status label for a serial number"""
        ...

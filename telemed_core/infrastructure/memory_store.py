"""In-memory persistence collaborator with per-user row locks

Stands in for the database in tests and single-process tools. Each user
balance has its own lock; a unit of work acquires it on the first
get_user_balance_for_update and releases it on commit or rollback, which
gives the same serialization guarantee as SELECT ... FOR UPDATE. Writes are
buffered in the unit of work and applied only on commit.
"""

import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from telemed_core.domain.models import NewTransaction, SuperiorLink, Transaction


@dataclass
class Account:
    """Ledger view of a user row"""

    user_id: str
    tmc_credits: int = 0
    balance_version: int = 0
    superior_doctor_id: Optional[str] = None
    percentage_from_inferiors: Optional[int] = 10


class InMemoryLedger:
    """Shared state: accounts, the transaction log, function costs and row locks"""

    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.transactions: List[Transaction] = []
        self.function_costs: Dict[str, int] = {}
        self._row_locks: Dict[str, threading.Lock] = {}
        self._state_lock = threading.Lock()
        self._ids = itertools.count(1)

    def add_user(
        self,
        user_id: str,
        tmc_credits: int = 0,
        superior_doctor_id: Optional[str] = None,
        percentage_from_inferiors: Optional[int] = 10,
    ) -> Account:
        account = Account(
            user_id=user_id,
            tmc_credits=tmc_credits,
            superior_doctor_id=superior_doctor_id,
            percentage_from_inferiors=percentage_from_inferiors,
        )
        with self._state_lock:
            self.accounts[user_id] = account
        return account

    def set_function_cost(self, function_name: str, cost_in_credits: int) -> None:
        with self._state_lock:
            self.function_costs[function_name] = cost_in_credits

    def row_lock(self, user_id: str) -> threading.Lock:
        with self._state_lock:
            return self._row_locks.setdefault(user_id, threading.Lock())

    def next_id(self) -> int:
        with self._state_lock:
            return next(self._ids)

    @contextmanager
    def unit_of_work(self) -> Iterator["InMemoryLedgerStore"]:
        store = InMemoryLedgerStore(self)
        try:
            yield store
            store.commit()
        finally:
            store.release()


class InMemoryLedgerStore:
    """LedgerStore bound to one unit of work over an InMemoryLedger"""

    def __init__(self, ledger: InMemoryLedger):
        self.ledger = ledger
        self._held: List[threading.Lock] = []
        self._locked_ids: set = set()
        self._pending_accounts: Dict[str, Account] = {}
        self._pending_transactions: List[Transaction] = []

    def _account(self, user_id: str) -> Optional[Account]:
        if user_id in self._pending_accounts:
            return self._pending_accounts[user_id]
        return self.ledger.accounts.get(user_id)

    def _lock_row(self, user_id: str) -> None:
        if user_id in self._locked_ids:
            return
        lock = self.ledger.row_lock(user_id)
        lock.acquire()
        self._held.append(lock)
        self._locked_ids.add(user_id)

    def _stage(self, user_id: str) -> Account:
        """Copy-on-write of an account row; writes always hold the row lock"""
        self._lock_row(user_id)
        if user_id not in self._pending_accounts:
            self._pending_accounts[user_id] = replace(self.ledger.accounts[user_id])
        return self._pending_accounts[user_id]

    def get_user_balance_for_update(self, user_id: str) -> Optional[int]:
        self._lock_row(user_id)
        account = self._account(user_id)
        return account.tmc_credits if account is not None else None

    def get_user_balance(self, user_id: str) -> Optional[int]:
        account = self._account(user_id)
        return account.tmc_credits if account is not None else None

    def set_user_balance(self, user_id: str, new_balance: int) -> None:
        account = self._stage(user_id)
        account.tmc_credits = new_balance
        account.balance_version += 1

    def insert_transaction(self, record: NewTransaction) -> Transaction:
        transaction = Transaction(
            id=self.ledger.next_id(),
            user_id=record.user_id,
            type=record.type,
            amount=record.amount,
            reason=record.reason,
            balance_before=record.balance_before,
            balance_after=record.balance_after,
            created_at=datetime.now(timezone.utc),
            function_used=record.function_used,
            related_user_id=record.related_user_id,
            appointment_id=record.appointment_id,
            medical_record_id=record.medical_record_id,
        )
        self._pending_transactions.append(transaction)
        return transaction

    def get_transactions(self, user_id: str, limit: int) -> List[Transaction]:
        rows = [t for t in self.ledger.transactions + self._pending_transactions if t.user_id == user_id]
        rows.sort(key=lambda t: t.id, reverse=True)
        return rows[:limit]

    def user_exists(self, user_id: str) -> bool:
        return self._account(user_id) is not None

    def get_superior(self, user_id: str) -> Optional[SuperiorLink]:
        account = self._account(user_id)
        if account is None or not account.superior_doctor_id:
            return None
        superior = self._account(account.superior_doctor_id)
        percentage = superior.percentage_from_inferiors if superior is not None else None
        return SuperiorLink(superior_id=account.superior_doctor_id, percentage=percentage)

    def set_superior(self, user_id: str, superior_id: Optional[str]) -> None:
        self._stage(user_id).superior_doctor_id = superior_id

    def set_percentage_from_inferiors(self, user_id: str, percentage: int) -> None:
        self._stage(user_id).percentage_from_inferiors = percentage

    def get_function_cost(self, function_name: str) -> Optional[int]:
        return self.ledger.function_costs.get(function_name)

    def commit(self) -> None:
        with self.ledger._state_lock:
            self.ledger.accounts.update(self._pending_accounts)
            self.ledger.transactions.extend(self._pending_transactions)
        self._pending_accounts = {}
        self._pending_transactions = []

    def release(self) -> None:
        """Drop uncommitted writes and release row locks"""
        self._pending_accounts = {}
        self._pending_transactions = []
        while self._held:
            self._held.pop().release()
        self._locked_ids.clear()

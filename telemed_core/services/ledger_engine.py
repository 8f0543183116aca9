"""TMC credit ledger engine - the only writer of user balances

Every balance-affecting operation runs inside one unit of work opened from the
persistence collaborator:

1. Lock the affected balance rows (ascending user id when more than one)
2. Read balances, compute the new ones
3. Write balances and append one transaction row per mutation
4. Commit, or roll back everything if any step raises

Insufficient funds is an expected outcome. The attempt_* operations report it
as a LedgerOutcome value; process_debit and transfer_credits adapt that to
their historical conventions (None and an exception respectively).
"""

import time
from typing import Iterable, List, Optional, Tuple

from telemed_core.config import settings
from telemed_core.domain.commission import build_commission_chain, commission_reason, compute_commission_cascade
from telemed_core.domain.exceptions import (
    HierarchyCycleError,
    InsufficientBalanceError,
    InvalidLedgerOperationError,
    RecipientNotFoundError,
    UserNotFoundError,
)
from telemed_core.domain.models import (
    CREDIT,
    DEBIT,
    TRANSFER,
    LedgerOutcome,
    NewTransaction,
    SuperiorLink,
    Transaction,
)
from telemed_core.domain.ports import LedgerStore, UnitOfWorkFactory
from telemed_core.infrastructure.observability.logging import log_ledger_event
from telemed_core.infrastructure.observability.metrics import (
    commission_posting_counter,
    ledger_operation_latency_histogram,
    record_ledger_operation,
)


def _require_positive(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidLedgerOperationError(f"Amount must be a positive integer, got {amount!r}")


class LedgerEngine:
    """Atomic credit, debit, transfer and hierarchical commission operations"""

    def __init__(
        self,
        unit_of_work: UnitOfWorkFactory,
        max_depth: Optional[int] = None,
        default_percentage: Optional[int] = None,
    ):
        self._unit_of_work = unit_of_work
        self.max_depth = max_depth if max_depth is not None else settings.commission_max_depth
        self.default_percentage = (
            default_percentage if default_percentage is not None else settings.default_percentage_from_inferiors
        )

    # --- balance mutations ---

    def process_credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        function_used: Optional[str] = None,
        related_user_id: Optional[str] = None,
        appointment_id: Optional[str] = None,
        medical_record_id: Optional[str] = None,
    ) -> Transaction:
        """
        Credit a user's balance.

        Raises:
            InvalidLedgerOperationError: amount is not positive
            UserNotFoundError: user does not exist (nothing is written)
        """
        _require_positive(amount)
        start = time.perf_counter()

        try:
            with ledger_operation_latency_histogram.labels(operation="credit").time():
                with self._unit_of_work() as store:
                    balance = self._lock(store, user_id)
                    transaction = self._post(
                        store,
                        user_id,
                        balance,
                        amount,
                        CREDIT,
                        reason,
                        function_used=function_used,
                        related_user_id=related_user_id,
                        appointment_id=appointment_id,
                        medical_record_id=medical_record_id,
                    )
        except UserNotFoundError:
            self._record("credit", user_id, amount, "not_found", start)
            raise
        except Exception:
            self._record("credit", user_id, amount, "error", start)
            raise

        self._record("credit", user_id, amount, "success", start, [transaction])
        return transaction

    def attempt_debit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        function_used: Optional[str] = None,
        related_user_id: Optional[str] = None,
        appointment_id: Optional[str] = None,
        medical_record_id: Optional[str] = None,
    ) -> LedgerOutcome:
        """
        Debit a user's balance, reporting insufficient funds as a value.

        Returns:
            LedgerOutcome with the debit transaction, or with
            error=InsufficientBalanceError and the balance untouched

        Raises:
            InvalidLedgerOperationError: amount is not positive
            UserNotFoundError: user does not exist
        """
        _require_positive(amount)
        start = time.perf_counter()

        try:
            with ledger_operation_latency_histogram.labels(operation="debit").time():
                with self._unit_of_work() as store:
                    balance = self._lock(store, user_id)
                    transaction = self._post(
                        store,
                        user_id,
                        balance,
                        -amount,
                        DEBIT,
                        reason,
                        function_used=function_used,
                        related_user_id=related_user_id,
                        appointment_id=appointment_id,
                        medical_record_id=medical_record_id,
                    )
        except InsufficientBalanceError as e:
            self._record("debit", user_id, -amount, "insufficient_balance", start)
            return LedgerOutcome(error=e)
        except UserNotFoundError:
            self._record("debit", user_id, -amount, "not_found", start)
            raise
        except Exception:
            self._record("debit", user_id, -amount, "error", start)
            raise

        self._record("debit", user_id, -amount, "success", start, [transaction])
        return LedgerOutcome(transactions=[transaction])

    def process_debit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        function_used: Optional[str] = None,
        related_user_id: Optional[str] = None,
        appointment_id: Optional[str] = None,
        medical_record_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        """Debit a user's balance; returns None when the balance does not cover amount"""
        outcome = self.attempt_debit(
            user_id,
            amount,
            reason,
            function_used=function_used,
            related_user_id=related_user_id,
            appointment_id=appointment_id,
            medical_record_id=medical_record_id,
        )
        return outcome.transaction if outcome.ok else None

    def attempt_transfer(self, from_user_id: str, to_user_id: str, amount: int, reason: str) -> LedgerOutcome:
        """
        Move credits between two users in one unit of work.

        Both rows are locked in ascending id order so that two transfers
        crossing in opposite directions cannot deadlock.

        Returns:
            LedgerOutcome with [debit_side, credit_side], or with
            error=InsufficientBalanceError and neither balance touched

        Raises:
            InvalidLedgerOperationError: non-positive amount or self-transfer
            UserNotFoundError: sender does not exist
            RecipientNotFoundError: recipient does not exist
        """
        _require_positive(amount)
        if from_user_id == to_user_id:
            raise InvalidLedgerOperationError("Cannot transfer credits to the same user")
        start = time.perf_counter()

        try:
            with ledger_operation_latency_histogram.labels(operation="transfer").time():
                with self._unit_of_work() as store:
                    balances = {}
                    for user_id in sorted((from_user_id, to_user_id)):
                        balance = store.get_user_balance_for_update(user_id)
                        if balance is None:
                            if user_id == to_user_id:
                                raise RecipientNotFoundError(user_id)
                            raise UserNotFoundError(user_id)
                        balances[user_id] = balance

                    debit_side = self._post(
                        store,
                        from_user_id,
                        balances[from_user_id],
                        -amount,
                        TRANSFER,
                        f"Transfer to user - {reason}",
                        function_used="transfer",
                        related_user_id=to_user_id,
                    )
                    credit_side = self._post(
                        store,
                        to_user_id,
                        balances[to_user_id],
                        amount,
                        TRANSFER,
                        f"Transfer from user - {reason}",
                        function_used="transfer",
                        related_user_id=from_user_id,
                    )
        except InsufficientBalanceError as e:
            self._record("transfer", from_user_id, 0, "insufficient_balance", start, related_user_id=to_user_id)
            return LedgerOutcome(error=e)
        except UserNotFoundError:
            self._record("transfer", from_user_id, 0, "not_found", start, related_user_id=to_user_id)
            raise
        except Exception:
            self._record("transfer", from_user_id, 0, "error", start, related_user_id=to_user_id)
            raise

        self._record("transfer", from_user_id, 0, "success", start, [debit_side, credit_side], to_user_id)
        return LedgerOutcome(transactions=[debit_side, credit_side])

    def transfer_credits(
        self, from_user_id: str, to_user_id: str, amount: int, reason: str
    ) -> Tuple[Transaction, Transaction]:
        """
        Move credits between two users.

        Raises:
            InsufficientBalanceError: sender balance does not cover amount
            UserNotFoundError / RecipientNotFoundError: a party does not exist
        """
        outcome = self.attempt_transfer(from_user_id, to_user_id, amount, reason)
        if not outcome.ok:
            raise outcome.error
        debit_side, credit_side = outcome.transactions
        return debit_side, credit_side

    def process_hierarchical_commission(
        self,
        doctor_id: str,
        amount: int,
        function_used: str,
        appointment_id: Optional[str] = None,
    ) -> List[Transaction]:
        """
        Credit the doctor's superiors, up to max_depth levels.

        Commissions cascade: level 1 takes its percentage of amount, each
        higher level takes its percentage of the level below's commission
        (see compute_commission_cascade). All postings share one unit of
        work; if any fails, none survive.

        Returns:
            Transactions created, lowest level first (may be empty)
        """
        _require_positive(amount)
        start = time.perf_counter()

        try:
            with ledger_operation_latency_histogram.labels(operation="commission").time():
                with self._unit_of_work() as store:
                    chain = build_commission_chain(
                        doctor_id,
                        lambda user_id: self._superior(store, user_id),
                        self.max_depth,
                    )
                    postings = compute_commission_cascade(amount, chain)

                    balances = {}
                    for superior_id in sorted({p.superior_id for p in postings}):
                        balances[superior_id] = self._lock(store, superior_id)

                    transactions = []
                    for posting in postings:
                        transaction = self._post(
                            store,
                            posting.superior_id,
                            balances[posting.superior_id],
                            posting.amount,
                            CREDIT,
                            commission_reason(posting.level, function_used),
                            function_used=function_used,
                            related_user_id=doctor_id,
                            appointment_id=appointment_id,
                        )
                        balances[posting.superior_id] = transaction.balance_after
                        transactions.append(transaction)
        except UserNotFoundError:
            self._record("commission", doctor_id, 0, "not_found", start)
            raise
        except Exception:
            self._record("commission", doctor_id, 0, "error", start)
            raise

        for posting in postings:
            commission_posting_counter.labels(level=str(posting.level)).inc()
        self._record("commission", doctor_id, sum(t.amount for t in transactions), "success", start, transactions)
        return transactions

    def recharge_credits(self, user_id: str, amount: int, method: str) -> Transaction:
        """Credit purchased TMC (PayPal, PIX, admin grant, ...)"""
        return self.process_credit(user_id, amount, f"Credit recharge via {method}", "recharge")

    def add_promotional_credits(self, user_id: str) -> Transaction:
        """Welcome credits granted at registration"""
        return self.process_credit(
            user_id,
            settings.promotional_credits,
            "promotional_credits",
            "user_registration",
        )

    def charge_for_function(
        self,
        user_id: str,
        function_name: str,
        appointment_id: Optional[str] = None,
        medical_record_id: Optional[str] = None,
    ) -> LedgerOutcome:
        """Debit the configured price of a paid feature; free features succeed without a transaction"""
        cost = self.get_function_cost(function_name)
        if cost <= 0:
            return LedgerOutcome()
        return self.attempt_debit(
            user_id,
            cost,
            function_name,
            function_used=function_name,
            appointment_id=appointment_id,
            medical_record_id=medical_record_id,
        )

    # --- reads ---

    def get_user_balance(self, user_id: str) -> int:
        with self._unit_of_work() as store:
            return store.get_user_balance(user_id) or 0

    def get_transaction_history(self, user_id: str, limit: Optional[int] = None) -> List[Transaction]:
        with self._unit_of_work() as store:
            return store.get_transactions(user_id, limit or settings.transaction_history_limit)

    def get_function_cost(self, function_name: str) -> int:
        with self._unit_of_work() as store:
            return store.get_function_cost(function_name) or 0

    def validate_sufficient_credits(self, user_id: str, function_name: str) -> bool:
        return self.get_user_balance(user_id) >= self.get_function_cost(function_name)

    # --- hierarchy ---

    def assign_superior(self, user_id: str, superior_id: Optional[str]) -> None:
        """
        Set (or clear, with None) a user's superior doctor.

        Raises:
            UserNotFoundError: either user does not exist
            HierarchyCycleError: the new edge would close a cycle
        """
        if superior_id == user_id:
            raise HierarchyCycleError(f"User {user_id} cannot be their own superior")

        with self._unit_of_work() as store:
            if not store.user_exists(user_id):
                raise UserNotFoundError(user_id)
            if superior_id is not None:
                if not store.user_exists(superior_id):
                    raise UserNotFoundError(superior_id)
                for ancestor in self._ancestors(store, superior_id):
                    if ancestor == user_id:
                        raise HierarchyCycleError(
                            f"Assigning {superior_id} as superior of {user_id} would create a cycle"
                        )
            store.set_superior(user_id, superior_id)

    def set_percentage_from_inferiors(self, user_id: str, percentage: int) -> None:
        if not 0 <= percentage <= 100:
            raise InvalidLedgerOperationError(f"Percentage must be between 0 and 100, got {percentage}")
        with self._unit_of_work() as store:
            if not store.user_exists(user_id):
                raise UserNotFoundError(user_id)
            store.set_percentage_from_inferiors(user_id, percentage)

    # --- internals ---

    def _lock(self, store: LedgerStore, user_id: str) -> int:
        balance = store.get_user_balance_for_update(user_id)
        if balance is None:
            raise UserNotFoundError(user_id)
        return balance

    def _post(
        self,
        store: LedgerStore,
        user_id: str,
        balance_before: int,
        delta: int,
        type: str,
        reason: str,
        **references: Optional[str],
    ) -> Transaction:
        """Write the new balance and its transaction row; caller must hold the row lock"""
        balance_after = balance_before + delta
        if balance_after < 0:
            raise InsufficientBalanceError(user_id, balance_before, -delta)

        store.set_user_balance(user_id, balance_after)
        return store.insert_transaction(
            NewTransaction(
                user_id=user_id,
                type=type,
                amount=delta,
                reason=reason,
                balance_before=balance_before,
                balance_after=balance_after,
                **references,
            )
        )

    def _superior(self, store: LedgerStore, user_id: str) -> Optional[SuperiorLink]:
        link = store.get_superior(user_id)
        if link is None or link.percentage is not None:
            return link
        return SuperiorLink(superior_id=link.superior_id, percentage=self.default_percentage)

    def _ancestors(self, store: LedgerStore, user_id: str) -> Iterable[str]:
        """user_id followed by every superior above it; terminates on pre-existing cycles"""
        seen = set()
        current: Optional[str] = user_id
        while current is not None and current not in seen:
            yield current
            seen.add(current)
            link = store.get_superior(current)
            current = link.superior_id if link else None

    def _record(
        self,
        operation: str,
        user_id: str,
        amount: int,
        outcome: str,
        start: float,
        transactions: Optional[List[Transaction]] = None,
        related_user_id: Optional[str] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - start) * 1000
        record_ledger_operation(operation, outcome, amount)
        log_ledger_event(
            operation,
            user_id,
            amount,
            outcome,
            duration_ms,
            related_user_id=related_user_id,
            transaction_ids=[t.id for t in transactions or []],
        )

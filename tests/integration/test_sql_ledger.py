"""Integration tests for the ledger engine against the SQLAlchemy store"""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from telemed_core.domain.exceptions import (
    InsufficientBalanceError,
    RecipientNotFoundError,
    UserNotFoundError,
)
from telemed_core.infrastructure.database.models import TmcTransaction, User
from telemed_core.infrastructure.database.repositories import FunctionCostRepository


def _balance(db: Session, user_id: str) -> int:
    db.expire_all()
    return db.get(User, user_id).tmc_credits


def test_debit_credit_debit_scenario(db, seed_user, sql_engine):
    seed_user("a", tmc_credits=100)

    assert sql_engine.process_debit("a", 150, "x") is None
    assert _balance(db, "a") == 100

    credit = sql_engine.process_credit("a", 50, "y")
    debit = sql_engine.process_debit("a", 150, "z")

    assert (credit.balance_before, credit.balance_after) == (100, 150)
    assert (debit.balance_before, debit.balance_after) == (150, 0)
    assert debit.id > credit.id
    assert _balance(db, "a") == 0
    assert db.get(User, "a").balance_version == 2
    assert db.query(TmcTransaction).count() == 2


def test_transfer_persists_both_sides(db, seed_user, sql_engine):
    seed_user("a", tmc_credits=100)
    seed_user("b")

    debit_side, credit_side = sql_engine.transfer_credits("a", "b", 30, "split")

    assert _balance(db, "a") == 70
    assert _balance(db, "b") == 30
    rows = db.query(TmcTransaction).order_by(TmcTransaction.id).all()
    assert [(r.user_id, r.amount, r.type) for r in rows] == [("a", -30, "transfer"), ("b", 30, "transfer")]
    assert rows[0].related_user_id == "b"


def test_failed_transfer_rolls_back(db, seed_user, sql_engine):
    seed_user("a", tmc_credits=10)
    seed_user("b")

    with pytest.raises(InsufficientBalanceError):
        sql_engine.transfer_credits("a", "b", 20, "x")
    with pytest.raises(RecipientNotFoundError):
        sql_engine.transfer_credits("a", "ghost", 5, "x")

    assert _balance(db, "a") == 10
    assert db.query(TmcTransaction).count() == 0


def test_commission_scenario(db, seed_user, sql_engine):
    seed_user("s2", percentage_from_inferiors=20)
    seed_user("s1", superior_doctor_id="s2", percentage_from_inferiors=10)
    seed_user("d", superior_doctor_id="s1")

    transactions = sql_engine.process_hierarchical_commission("d", 1000, "consult")

    assert [(t.user_id, t.amount) for t in transactions] == [("s1", 100), ("s2", 20)]
    assert _balance(db, "s1") == 100
    assert _balance(db, "s2") == 20


def test_commission_missing_superior_rolls_back(db, seed_user, sql_engine):
    """Second-level superior row is missing: the level 1 posting is undone too"""
    seed_user("s1")
    seed_user("d", superior_doctor_id="s1")
    # Simulate a dangling link left behind by an out-of-band delete
    db.execute(User.__table__.update().where(User.id == "s1").values(superior_doctor_id="vanished"))
    db.commit()

    with pytest.raises(UserNotFoundError):
        sql_engine.process_hierarchical_commission("d", 1000, "consult")

    assert _balance(db, "s1") == 0
    assert db.query(TmcTransaction).count() == 0


def test_assign_superior_and_history(db, seed_user, sql_engine):
    seed_user("s1", percentage_from_inferiors=15)
    seed_user("d")

    sql_engine.assign_superior("d", "s1")
    sql_engine.process_hierarchical_commission("d", 200, "consult")
    sql_engine.process_hierarchical_commission("d", 400, "consult")

    history = sql_engine.get_transaction_history("s1")
    assert [t.amount for t in history] == [60, 30]


def test_function_cost_lookup(db, seed_user, sql_engine):
    seed_user("a", tmc_credits=50)
    FunctionCostRepository(db).upsert("prescription_signature", 20, category="prescription")
    db.commit()

    assert sql_engine.get_function_cost("prescription_signature") == 20
    assert sql_engine.get_function_cost("unknown") == 0

    outcome = sql_engine.charge_for_function("a", "prescription_signature")
    assert outcome.transaction.amount == -20
    assert _balance(db, "a") == 30


def test_balance_check_constraint(db, seed_user):
    """The database itself refuses negative balances"""
    seed_user("a")
    with pytest.raises(IntegrityError):
        db.execute(User.__table__.update().where(User.id == "a").values(tmc_credits=-1))
    db.rollback()

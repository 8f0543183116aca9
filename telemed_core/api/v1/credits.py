"""/v1/credits - TMC balance, history and ledger mutations"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from telemed_core.api.dependencies import get_ledger_engine, get_request_id
from telemed_core.api.v1.schemas import (
    BalanceResponse,
    ChargeRequest,
    ChargeResponse,
    CommissionRequest,
    CreditRequest,
    FunctionCostSchema,
    FunctionCostUpdate,
    RechargeRequest,
    TransactionHistoryResponse,
    TransactionSchema,
    TransferRequest,
)
from telemed_core.domain.exceptions import (
    HierarchyCycleError,
    InsufficientBalanceError,
    InvalidLedgerOperationError,
    LedgerError,
    UserNotFoundError,
)
from telemed_core.infrastructure.database.repositories import FunctionCostRepository
from telemed_core.infrastructure.database.session import get_db
from telemed_core.services.ledger_engine import LedgerEngine

router = APIRouter()


def _ledger_http_error(error: LedgerError, request_id: str) -> HTTPException:
    """Translate a domain error into the user-facing HTTP error"""
    if isinstance(error, UserNotFoundError):
        logging.warning(f"Ledger target missing: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InsufficientBalanceError):
        logging.info(f"Insufficient credits: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=402, detail="Insufficient credits")
    if isinstance(error, (InvalidLedgerOperationError, HierarchyCycleError)):
        return HTTPException(status_code=422, detail=str(error))
    logging.error(f"Ledger error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=400, detail=str(error))


@router.get("/credits/{user_id}/balance", response_model=BalanceResponse)
def get_balance(user_id: str, ledger: LedgerEngine = Depends(get_ledger_engine)):
    """Current TMC balance (0 for unknown users)"""
    return BalanceResponse(user_id=user_id, balance=ledger.get_user_balance(user_id))


@router.get("/credits/{user_id}/transactions", response_model=TransactionHistoryResponse)
def get_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    ledger: LedgerEngine = Depends(get_ledger_engine),
):
    """Recent ledger entries for a user, newest first"""
    transactions = ledger.get_transaction_history(user_id, limit=limit)
    return TransactionHistoryResponse(
        user_id=user_id,
        transactions=[TransactionSchema.model_validate(t) for t in transactions],
    )


@router.post("/credits/credit", response_model=TransactionSchema)
def credit(body: CreditRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    try:
        return ledger.process_credit(
            body.user_id,
            body.amount,
            body.reason,
            function_used=body.function_used,
            related_user_id=body.related_user_id,
            appointment_id=body.appointment_id,
            medical_record_id=body.medical_record_id,
        )
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))


@router.post("/credits/debit", response_model=TransactionSchema)
def debit(body: CreditRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    """Debit credits; 402 when the balance does not cover the amount"""
    try:
        outcome = ledger.attempt_debit(
            body.user_id,
            body.amount,
            body.reason,
            function_used=body.function_used,
            related_user_id=body.related_user_id,
            appointment_id=body.appointment_id,
            medical_record_id=body.medical_record_id,
        )
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))

    if not outcome.ok:
        raise _ledger_http_error(outcome.error, get_request_id(request))
    return outcome.transaction


@router.post("/credits/charge", response_model=ChargeResponse)
def charge(body: ChargeRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    """Charge the configured price of a paid feature"""
    try:
        outcome = ledger.charge_for_function(
            body.user_id,
            body.function_name,
            appointment_id=body.appointment_id,
            medical_record_id=body.medical_record_id,
        )
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))

    if not outcome.ok:
        raise _ledger_http_error(outcome.error, get_request_id(request))
    transaction = outcome.transaction
    return ChargeResponse(
        charged=-transaction.amount if transaction else 0,
        transaction=TransactionSchema.model_validate(transaction) if transaction else None,
    )


@router.post("/credits/transfer", response_model=list[TransactionSchema])
def transfer(body: TransferRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    """Returns [sender_entry, recipient_entry]"""
    try:
        outcome = ledger.attempt_transfer(body.from_user_id, body.to_user_id, body.amount, body.reason)
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))

    if not outcome.ok:
        raise _ledger_http_error(outcome.error, get_request_id(request))
    return outcome.transactions


@router.post("/credits/recharge", response_model=TransactionSchema)
def recharge(body: RechargeRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    try:
        return ledger.recharge_credits(body.user_id, body.amount, body.method)
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))


@router.post("/credits/commission", response_model=list[TransactionSchema])
def commission(body: CommissionRequest, request: Request, ledger: LedgerEngine = Depends(get_ledger_engine)):
    """Distribute hierarchical commission for a doctor's earnings"""
    try:
        return ledger.process_hierarchical_commission(
            body.doctor_id,
            body.amount,
            body.function_used,
            appointment_id=body.appointment_id,
        )
    except LedgerError as e:
        raise _ledger_http_error(e, get_request_id(request))


@router.get("/function-costs", response_model=list[FunctionCostSchema])
def list_function_costs(db: Session = Depends(get_db)):
    """Active price list"""
    return FunctionCostRepository(db).list_active()


@router.put("/function-costs/{function_name}", response_model=FunctionCostSchema)
def update_function_cost(
    function_name: str,
    body: FunctionCostUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    """Create or update a feature's price"""
    try:
        row = FunctionCostRepository(db).upsert(
            function_name,
            body.cost_in_credits,
            updated_by=body.updated_by,
            category=body.category,
            description=body.description,
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Internal server error")
    return FunctionCostSchema.model_validate(row)

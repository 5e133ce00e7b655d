"""Billing routes."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from wadi.database import get_db
from wadi.dependencies import get_current_user
from wadi.schemas.credit import BalanceResponse, HistoryResponse, PurchaseRequest
from wadi.services.credits import CreditLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("", response_model=BalanceResponse)
def get_billing(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    account = CreditLedger(db).get_account(user_id)
    return BalanceResponse(credits=account.credits, credits_used=account.credits_used, plan=account.plan)


@router.get("/history", response_model=HistoryResponse)
def get_history(
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Credit history, newest first."""
    entries = CreditLedger(db).history(user_id, limit)
    return HistoryResponse(history=[e.to_dict() for e in entries])


@router.post("/purchase", response_model=BalanceResponse)
def purchase_credits(
    data: PurchaseRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add credits to the caller's balance. Payment capture happens upstream."""
    ledger = CreditLedger(db)
    ledger.credit(user_id, data.amount, "purchase", {"amount": data.amount})
    account = ledger.get_account(user_id)
    logger.info(f"User {user_id} purchased {data.amount} credits")
    return BalanceResponse(credits=account.credits, credits_used=account.credits_used, plan=account.plan)

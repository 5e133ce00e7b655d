"""Billing schemas."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class PurchaseRequest(BaseModel):
    amount: int = Field(gt=0)


class BalanceResponse(BaseModel):
    credits: int
    credits_used: int
    plan: str


class HistoryResponse(BaseModel):
    history: List[Dict[str, Any]]

"""Pydantic schemas for credit balance endpoints."""
from datetime import datetime

from pydantic import Field

from schemas.actions import CamelModel


class CreditLedgerEntry(CamelModel):
    """One change to a user's credit balance."""

    id: str
    delta: int
    reason: str
    created_at: datetime


class CreditBalanceResponse(CamelModel):
    """Current balance plus the most recent ledger entries, newest first."""

    credits: int = Field(..., ge=0)
    history: list[CreditLedgerEntry]

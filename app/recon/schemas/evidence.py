"""
Evidence schemas: receipts, bank credits and sync results.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReceiptResponse(BaseModel):
    """Payment slip pulled from a client reply"""
    id: str
    invoice_id: Optional[str] = None
    invoice_no: Optional[str] = None
    amount: Optional[Decimal] = None
    matched_amount: Optional[Decimal] = None
    message_id: str
    thread_id: Optional[str] = None
    file_name: str
    file_type: str
    file_size: Optional[int] = None
    payer_name: Optional[str] = None
    payer_email: Optional[str] = None
    confidence: float
    status: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_note: Optional[str] = None
    received_at: Optional[datetime] = None
    created_at: datetime


class BankCreditResponse(BaseModel):
    """Bank credit notification"""
    id: str
    amount: Decimal
    currency: str
    value_date: Optional[datetime] = None
    payer_name: Optional[str] = None
    bank_ref: Optional[str] = None
    memo: Optional[str] = None
    source_mailbox: Optional[str] = None
    message_id: str
    matched_invoice_id: Optional[str] = None
    matched_amount: Optional[Decimal] = None
    confidence: float
    status: str
    closed_reason: Optional[str] = None
    received_at: Optional[datetime] = None
    created_at: datetime


class ReceiptMatchRequest(BaseModel):
    invoice_id: str
    amount: Decimal = Field(..., gt=0)


class BankCreditMatchRequest(BaseModel):
    invoice_id: str
    amount: Optional[Decimal] = Field(default=None, gt=0, description="defaults to the credit amount")


class VerifyRequest(BaseModel):
    review_note: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    review_note: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank")
        return v


class SyncResponse(BaseModel):
    """Result of one mailbox pass"""
    count: int
    scanned: int = 0
    skipped: int = 0

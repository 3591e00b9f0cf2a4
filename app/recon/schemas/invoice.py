"""
Invoice, payment match and settings schemas
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class InvoiceResponse(BaseModel):
    id: str
    invoice_no: str
    currency: str
    total: Decimal
    collected: Decimal
    outstanding: Decimal
    status: str
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PaymentMatchResponse(BaseModel):
    """Ledger audit row"""
    id: str
    invoice_id: str
    receipt_id: Optional[str] = None
    bank_credit_id: Optional[str] = None
    amount: Decimal
    matched_by: str
    matched_at: datetime
    type: str = Field(..., description="receipt|bank_credit")


class MailboxAddressResponse(BaseModel):
    address: str


class MailboxAddressUpdate(BaseModel):
    address: str = Field(..., min_length=3, max_length=320)

"""
Invoice and payment-match models.

An invoice's financial state is only mutated through ``record_payment``;
every application leaves one immutable ``PaymentMatchModel`` row behind.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)

from app.recon.database import Base

ZERO = Decimal("0.00")


class InvoiceStatus:
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELED = "CANCELED"

    CLOSED = (PAID, CANCELED)


class InvoiceModel(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True)
    invoice_no = Column(String, nullable=False, unique=True, index=True)  # INV-2025-001
    currency = Column(String(8), nullable=False, default="USD")
    total = Column(Numeric(14, 2), nullable=False)
    collected = Column(Numeric(14, 2), nullable=False, default=ZERO)
    outstanding = Column(Numeric(14, 2), nullable=False, default=ZERO)
    status = Column(String, nullable=False, default=InvoiceStatus.DRAFT)
    version = Column(Integer, nullable=False)
    issue_date = Column(DateTime)
    due_date = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.collected is None:
            self.collected = ZERO
        self.recompute()

    def recompute(self) -> Decimal:
        """outstanding = max(0, total - collected)"""
        self.outstanding = max(ZERO, Decimal(self.total) - Decimal(self.collected))
        return self.outstanding

    def record_payment(self, amount: Decimal) -> None:
        new_collected = Decimal(self.collected) + Decimal(amount)
        self.collected = new_collected
        if self.recompute() == ZERO:
            self.status = InvoiceStatus.PAID
        elif new_collected > ZERO:
            self.status = InvoiceStatus.PARTIALLY_PAID


class PaymentMatchModel(Base):
    """Audit row written once per ledger application. Never updated."""
    __tablename__ = "payment_matches"
    __table_args__ = (
        CheckConstraint(
            "(receipt_id IS NULL) <> (bank_credit_id IS NULL)",
            name="ck_payment_match_one_evidence",
        ),
    )

    id = Column(String, primary_key=True)
    invoice_id = Column(String, ForeignKey("invoices.id"), nullable=False, index=True)
    receipt_id = Column(String, ForeignKey("payment_receipts.id"), index=True)
    bank_credit_id = Column(String, ForeignKey("bank_credits.id"), index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    matched_by = Column(String, nullable=False)
    matched_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    type = Column(String, nullable=False)  # receipt | bank_credit

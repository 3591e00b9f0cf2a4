"""
Evidence models: payment slips pulled from client replies and bank credit
notifications.
"""
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from app.recon.database import Base


class ReceiptStatus:
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class BankCreditStatus:
    UNMATCHED = "UNMATCHED"
    MATCHED = "MATCHED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class ReceiptModel(Base):
    """Payment slip attached to a reply on one of our invoice emails"""
    __tablename__ = "payment_receipts"
    __table_args__ = (
        UniqueConstraint("message_id", "file_name", name="uq_receipt_message_file"),
    )

    MATCH_TYPE = "receipt"
    APPLIED_STATUS = ReceiptStatus.VERIFIED

    id = Column(String, primary_key=True)
    invoice_id = Column(String, ForeignKey("invoices.id"), index=True)
    invoice_no = Column(String, index=True)  # reference code seen in the mail
    amount = Column(Numeric(14, 2))  # extracted from the slip, may be missing
    matched_amount = Column(Numeric(14, 2))  # chosen by the reviewer at match time

    message_id = Column(String, nullable=False, index=True)
    thread_id = Column(String)
    attachment_id = Column(Text)
    file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer)

    payer_name = Column(String)
    payer_email = Column(String)
    confidence = Column(Float, nullable=False, default=0.0)

    status = Column(String, nullable=False, default=ReceiptStatus.SUBMITTED)
    reviewed_by = Column(String)
    reviewed_at = Column(DateTime)
    review_note = Column(Text)

    received_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def applicable_amount(self):
        return self.matched_amount if self.matched_amount is not None else self.amount


class BankCreditModel(Base):
    """Credit notification from the bank"""
    __tablename__ = "bank_credits"

    MATCH_TYPE = "bank_credit"
    APPLIED_STATUS = BankCreditStatus.MATCHED

    id = Column(String, primary_key=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    value_date = Column(DateTime)
    payer_name = Column(String)
    bank_ref = Column(String)  # mail subject
    memo = Column(Text)  # mail snippet
    source_mailbox = Column(String)
    message_id = Column(String, nullable=False, unique=True)

    matched_invoice_id = Column(String, ForeignKey("invoices.id"), index=True)
    matched_amount = Column(Numeric(14, 2))
    confidence = Column(Float, nullable=False, default=0.5)
    status = Column(String, nullable=False, default=BankCreditStatus.UNMATCHED)
    closed_reason = Column(String)  # not_ours

    received_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

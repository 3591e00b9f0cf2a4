"""
Review workflow for evidence.

Receipts:     SUBMITTED --verify--> VERIFIED
              SUBMITTED --reject--> REJECTED
              (match/unmatch link an invoice before verification)
Bank credits: UNMATCHED --match-->    MATCHED  (ledger applied)
              UNMATCHED --not-ours--> MATCHED  (closed, no ledger effect)
              UNMATCHED --flag-->     NEEDS_REVIEW

Ledger effects only happen on VERIFIED / MATCHED-by-match and are never
repeated; see ``ledger.py``.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.recon.errors import (
    ExtractionUnavailable,
    InvalidTransition,
    NotFound,
    ValidationFailure,
)
from app.recon.mailbox import Mailbox
from app.recon.models import (
    BankCreditModel,
    BankCreditStatus,
    InvoiceModel,
    InvoiceStatus,
    PaymentMatchModel,
    ReceiptModel,
    ReceiptStatus,
)
from app.recon.pipeline.amount import AmountExtractor, find_credit_amount
from app.recon.pipeline.ledger import ReconciliationLedger

logger = logging.getLogger(__name__)

NOT_OURS = "not_ours"


def _positive(amount: Optional[Decimal]) -> Decimal:
    if amount is None or Decimal(amount) <= 0:
        raise ValidationFailure("Amount must be positive", amount=str(amount))
    return Decimal(amount)


class ReviewWorkflow:
    def __init__(
        self,
        db: Session,
        ledger: ReconciliationLedger,
        mailbox: Optional[Mailbox] = None,
        extractor: Optional[AmountExtractor] = None,
        default_currency: str = "USD",
    ):
        self.db = db
        self.ledger = ledger
        self.mailbox = mailbox
        self.extractor = extractor
        self.default_currency = default_currency

    # ── lookups ──────────────────────────────────────────────────────────

    def get_receipt(self, receipt_id: str) -> ReceiptModel:
        receipt = self.db.get(ReceiptModel, receipt_id)
        if receipt is None:
            raise NotFound("Receipt", receipt_id)
        return receipt

    def get_bank_credit(self, credit_id: str) -> BankCreditModel:
        credit = self.db.get(BankCreditModel, credit_id)
        if credit is None:
            raise NotFound("Bank credit", credit_id)
        return credit

    def _open_invoice(self, invoice_id: str) -> InvoiceModel:
        invoice = self.db.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise NotFound("Invoice", invoice_id)
        if invoice.status == InvoiceStatus.CANCELED:
            raise InvalidTransition("Invoice is canceled", invoice_id=invoice_id)
        return invoice

    def _check_outstanding(self, invoice: InvoiceModel, amount: Decimal) -> None:
        if not self.ledger.allow_overpayment and amount > Decimal(invoice.outstanding):
            raise ValidationFailure(
                "Amount exceeds invoice outstanding",
                amount=str(amount),
                outstanding=str(invoice.outstanding),
            )

    def _has_ledger_effect(self, **ref) -> bool:
        return self.db.query(PaymentMatchModel.id).filter_by(**ref).first() is not None

    # ── receipts ─────────────────────────────────────────────────────────

    def match_receipt(self, receipt_id: str, invoice_id: str, amount: Decimal) -> ReceiptModel:
        amount = _positive(amount)
        receipt = self.get_receipt(receipt_id)
        if receipt.status == ReceiptStatus.VERIFIED:
            logger.info("Receipt %s already verified; match ignored", receipt_id)
            return receipt
        if receipt.status == ReceiptStatus.REJECTED:
            raise InvalidTransition("Rejected receipt must be unmatched before matching", receipt_id=receipt_id)

        invoice = self._open_invoice(invoice_id)
        self._check_outstanding(invoice, amount)
        receipt.invoice_id = invoice.id
        receipt.invoice_no = invoice.invoice_no
        receipt.matched_amount = amount
        self.db.commit()
        logger.info("Receipt %s matched to %s for %s", receipt_id, invoice.invoice_no, amount)
        return receipt

    def unmatch_receipt(self, receipt_id: str) -> ReceiptModel:
        receipt = self.get_receipt(receipt_id)
        if receipt.status == ReceiptStatus.VERIFIED:
            raise InvalidTransition(
                "Verified receipt has been applied to its invoice and cannot be unmatched",
                receipt_id=receipt_id,
            )
        receipt.invoice_id = None
        receipt.matched_amount = None
        receipt.status = ReceiptStatus.SUBMITTED
        receipt.reviewed_by = None
        receipt.reviewed_at = None
        receipt.review_note = None
        self.db.commit()
        logger.info("Receipt %s unmatched", receipt_id)
        return receipt

    def verify_receipt(self, receipt_id: str, user: str, note: Optional[str] = None) -> ReceiptModel:
        receipt = self.get_receipt(receipt_id)
        if receipt.status == ReceiptStatus.VERIFIED:
            return receipt
        if receipt.status == ReceiptStatus.REJECTED:
            raise InvalidTransition("Receipt was rejected", receipt_id=receipt_id)
        if not receipt.invoice_id:
            raise ValidationFailure("Receipt is not matched to an invoice", receipt_id=receipt_id)
        amount = receipt.applicable_amount()
        if amount is None or Decimal(amount) <= 0:
            raise ValidationFailure("Receipt has no amount; match it with an amount first", receipt_id=receipt_id)

        self.ledger.apply(
            self.db,
            receipt,
            receipt.invoice_id,
            amount,
            matched_by=user,
            changes={
                "reviewed_by": user,
                "reviewed_at": datetime.utcnow(),
                "review_note": note,
            },
        )
        return self.get_receipt(receipt_id)

    def reject_receipt(self, receipt_id: str, user: str, reason: str, note: Optional[str] = None) -> ReceiptModel:
        if not reason or not reason.strip():
            raise ValidationFailure("A reason is required to reject a receipt")
        receipt = self.get_receipt(receipt_id)
        rejected = self.db.execute(
            update(ReceiptModel)
            .where(ReceiptModel.id == receipt_id, ReceiptModel.status == ReceiptStatus.SUBMITTED)
            .values(
                status=ReceiptStatus.REJECTED,
                reviewed_by=user,
                reviewed_at=datetime.utcnow(),
                review_note=note or reason.strip(),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()
        if not rejected:
            self.db.refresh(receipt)
            if receipt.status == ReceiptStatus.VERIFIED:
                raise InvalidTransition("Verified receipt cannot be rejected", receipt_id=receipt_id)
            return receipt
        logger.info("Receipt %s rejected by %s: %s", receipt_id, user, reason)
        return receipt

    def reextract_receipt(self, receipt_id: str) -> ReceiptModel:
        receipt = self.get_receipt(receipt_id)
        if receipt.status == ReceiptStatus.VERIFIED:
            raise InvalidTransition("Verified receipt amount is already on the ledger", receipt_id=receipt_id)
        if not receipt.attachment_id:
            raise ValidationFailure("No slip attached", receipt_id=receipt_id)

        data = self.mailbox.get_attachment(receipt.message_id, receipt.attachment_id)
        amount = self.extractor.extract(data, receipt.file_type)
        if amount is None:
            raise ExtractionUnavailable(receipt_id=receipt_id)
        receipt.amount = amount
        receipt.confidence = max(0.7, receipt.confidence or 0.0)
        self.db.commit()
        logger.info("Receipt %s re-extracted: %s", receipt_id, amount)
        return receipt

    # ── bank credits ─────────────────────────────────────────────────────

    def match_bank_credit(
        self, credit_id: str, invoice_id: str, user: str, amount: Optional[Decimal] = None
    ) -> BankCreditModel:
        credit = self.get_bank_credit(credit_id)
        if credit.status == BankCreditStatus.MATCHED:
            if credit.closed_reason == NOT_OURS:
                raise InvalidTransition("Bank credit was closed as not ours; reopen it first", credit_id=credit_id)
            return credit
        amount = _positive(amount if amount is not None else credit.amount)
        invoice = self._open_invoice(invoice_id)
        self._check_outstanding(invoice, amount)

        self.ledger.apply(
            self.db,
            credit,
            invoice.id,
            amount,
            matched_by=user,
            changes={
                "matched_invoice_id": invoice.id,
                "matched_amount": amount,
                "confidence": 0.95,
                "closed_reason": None,
            },
        )
        return self.get_bank_credit(credit_id)

    def mark_not_ours(self, credit_id: str, user: str) -> BankCreditModel:
        credit = self.get_bank_credit(credit_id)
        closed = self.db.execute(
            update(BankCreditModel)
            .where(
                BankCreditModel.id == credit_id,
                BankCreditModel.status.in_((BankCreditStatus.UNMATCHED, BankCreditStatus.NEEDS_REVIEW)),
            )
            .values(status=BankCreditStatus.MATCHED, closed_reason=NOT_OURS)
            .execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()
        if closed:
            logger.info("Bank credit %s marked not ours by %s", credit_id, user)
        return credit

    def flag_bank_credit(self, credit_id: str) -> BankCreditModel:
        credit = self.get_bank_credit(credit_id)
        if credit.status == BankCreditStatus.NEEDS_REVIEW:
            return credit
        if credit.status != BankCreditStatus.UNMATCHED:
            raise InvalidTransition("Only unmatched bank credits can be flagged", credit_id=credit_id)
        credit.status = BankCreditStatus.NEEDS_REVIEW
        self.db.commit()
        logger.info("Bank credit %s flagged for review", credit_id)
        return credit

    def unmatch_bank_credit(self, credit_id: str) -> BankCreditModel:
        credit = self.get_bank_credit(credit_id)
        if self._has_ledger_effect(bank_credit_id=credit_id):
            raise InvalidTransition(
                "Bank credit has been applied to an invoice and cannot be unmatched",
                credit_id=credit_id,
            )
        credit.status = BankCreditStatus.UNMATCHED
        credit.closed_reason = None
        credit.matched_invoice_id = None
        credit.matched_amount = None
        self.db.commit()
        logger.info("Bank credit %s reopened", credit_id)
        return credit

    def reextract_bank_credit(self, credit_id: str) -> BankCreditModel:
        credit = self.get_bank_credit(credit_id)
        if self._has_ledger_effect(bank_credit_id=credit_id):
            raise InvalidTransition("Bank credit amount is already on the ledger", credit_id=credit_id)

        message = self.mailbox.get(credit.message_id)
        parsed = find_credit_amount(message.snippet, self.default_currency)
        if parsed is None:
            raise ExtractionUnavailable(credit_id=credit_id)
        credit.amount, credit.currency = parsed
        credit.memo = message.snippet or credit.memo
        self.db.commit()
        logger.info("Bank credit %s re-extracted: %s %s", credit_id, credit.currency, credit.amount)
        return credit

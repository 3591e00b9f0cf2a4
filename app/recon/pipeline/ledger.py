"""
Reconciliation ledger — applies a confirmed evidence amount to an invoice
exactly once.

One transaction covers the invoice update, the PaymentMatch insert and the
evidence status flip. The invoice row is locked (``FOR UPDATE`` where the
backend supports it) and also carries an optimistic version counter; the
evidence is claimed with a conditional UPDATE so that of two concurrent
callers the first writer wins and the second is a no-op.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.recon.errors import InvalidTransition, NotFound, ValidationFailure
from app.recon.models import InvoiceModel, PaymentMatchModel, ReceiptModel
from app.recon.pipeline.identity import EvidenceIdentity, EvidenceRow

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    applied: bool
    invoice: InvoiceModel
    match: Optional[PaymentMatchModel] = None


def _match_ref(evidence: EvidenceRow, evidence_id: str) -> dict[str, str]:
    if isinstance(evidence, ReceiptModel):
        return {"receipt_id": evidence_id}
    return {"bank_credit_id": evidence_id}


def _match_fk(model: type):
    if model is ReceiptModel:
        return PaymentMatchModel.receipt_id
    return PaymentMatchModel.bank_credit_id


class ReconciliationLedger:
    def __init__(self, allow_overpayment: bool = True, max_retries: int = 3):
        self.allow_overpayment = allow_overpayment
        self.max_retries = max_retries

    def apply(
        self,
        db: Session,
        evidence: EvidenceRow,
        invoice_id: str,
        amount: Decimal,
        matched_by: str,
        changes: Optional[dict[str, Any]] = None,
    ) -> LedgerResult:
        """Apply *amount* from *evidence* to the invoice and commit.

        ``changes`` are extra evidence columns written together with the
        status flip (reviewer, matched invoice, ...).
        """
        if amount is None or Decimal(amount) <= 0:
            raise ValidationFailure("Amount must be positive", amount=str(amount))
        amount = Decimal(amount)
        evidence_id = evidence.id

        for attempt in range(1, self.max_retries + 1):
            try:
                result = self._apply_once(db, evidence, evidence_id, invoice_id, amount, matched_by, changes or {})
                db.commit()
            except StaleDataError:
                db.rollback()
                logger.warning(
                    "Invoice %s changed concurrently; retrying (%d/%d)",
                    invoice_id, attempt, self.max_retries,
                )
                continue
            except Exception:
                db.rollback()
                raise
            if result.applied:
                logger.info(
                    "Applied %s from %s %s to invoice %s (status=%s outstanding=%s)",
                    amount, type(evidence).MATCH_TYPE, evidence_id, invoice_id,
                    result.invoice.status, result.invoice.outstanding,
                )
            return result

        raise InvalidTransition("Invoice is being updated concurrently; try again", invoice_id=invoice_id)

    def _apply_once(
        self,
        db: Session,
        evidence: EvidenceRow,
        evidence_id: str,
        invoice_id: str,
        amount: Decimal,
        matched_by: str,
        changes: dict[str, Any],
    ) -> LedgerResult:
        model = type(evidence)
        applied_status = model.APPLIED_STATUS

        invoice = (
            db.query(InvoiceModel)
            .filter(InvoiceModel.id == invoice_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if invoice is None:
            raise NotFound("Invoice", invoice_id)

        identity = EvidenceIdentity.of(evidence)
        sibling = (
            db.query(PaymentMatchModel.id)
            .join(model, _match_fk(model) == model.id)
            .filter(*identity.where(), model.id != evidence_id)
            .first()
        )
        if sibling is not None:
            logger.info("Evidence %s already applied through a sibling row; skipping", identity.key())
            return LedgerResult(applied=False, invoice=invoice)

        if not self.allow_overpayment and amount > Decimal(invoice.outstanding):
            raise ValidationFailure(
                "Amount exceeds invoice outstanding",
                amount=str(amount),
                outstanding=str(invoice.outstanding),
            )

        claimed = db.execute(
            update(model)
            .where(model.id == evidence_id, model.status != applied_status)
            .values(status=applied_status, **changes)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not claimed:
            logger.info("%s %s already %s; skipping", model.MATCH_TYPE, evidence_id, applied_status)
            return LedgerResult(applied=False, invoice=invoice)

        if amount > Decimal(invoice.outstanding):
            logger.warning(
                "Overpayment on invoice %s: applying %s against outstanding %s",
                invoice.invoice_no, amount, invoice.outstanding,
            )
        invoice.record_payment(amount)
        match = PaymentMatchModel(
            id=str(uuid.uuid4()),
            invoice_id=invoice.id,
            amount=amount,
            matched_by=matched_by,
            type=model.MATCH_TYPE,
            **_match_ref(evidence, evidence_id),
        )
        db.add(match)
        db.flush()
        return LedgerResult(applied=True, invoice=invoice, match=match)

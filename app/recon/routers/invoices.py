"""
Invoice API router (read-only view plus the ledger audit trail)
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.recon.database import get_db
from app.recon.errors import NotFound
from app.recon.models import InvoiceModel, PaymentMatchModel
from app.recon.schemas import InvoiceResponse, PaymentMatchResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def transform_invoice(model: InvoiceModel) -> InvoiceResponse:
    return InvoiceResponse(
        id=model.id,
        invoice_no=model.invoice_no,
        currency=model.currency,
        total=model.total,
        collected=model.collected,
        outstanding=model.outstanding,
        status=model.status,
        issue_date=model.issue_date,
        due_date=model.due_date,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def transform_match(model: PaymentMatchModel) -> PaymentMatchResponse:
    return PaymentMatchResponse(
        id=model.id,
        invoice_id=model.invoice_id,
        receipt_id=model.receipt_id,
        bank_credit_id=model.bank_credit_id,
        amount=model.amount,
        matched_by=model.matched_by,
        matched_at=model.matched_at,
        type=model.type,
    )


def _get_invoice(db: Session, invoice_id: str) -> InvoiceModel:
    invoice = db.get(InvoiceModel, invoice_id)
    if invoice is None:
        raise NotFound("Invoice", invoice_id)
    return invoice


# ── GET /api/invoices ───────────────────────────────────────────────────────
@router.get("/invoices", response_model=List[InvoiceResponse])
def list_invoices(status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(InvoiceModel)
    if status:
        query = query.filter(InvoiceModel.status == status.upper())
    return [transform_invoice(inv) for inv in query.order_by(InvoiceModel.invoice_no).all()]


# ── GET /api/invoices/{invoice_id} ──────────────────────────────────────────
@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return transform_invoice(_get_invoice(db, invoice_id))


# ── GET /api/invoices/{invoice_id}/matches ──────────────────────────────────
@router.get("/invoices/{invoice_id}/matches", response_model=List[PaymentMatchResponse])
def list_invoice_matches(invoice_id: str, db: Session = Depends(get_db)):
    """Ledger applications against this invoice, oldest first"""
    _get_invoice(db, invoice_id)
    matches = (
        db.query(PaymentMatchModel)
        .filter(PaymentMatchModel.invoice_id == invoice_id)
        .order_by(PaymentMatchModel.matched_at)
        .all()
    )
    return [transform_match(m) for m in matches]

"""
Bank credit review API router
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.recon.database import get_db
from app.recon.deps import get_current_user, get_workflow, require_capability
from app.recon.models import BankCreditModel
from app.recon.pipeline.matcher import suggest_invoices
from app.recon.pipeline.review import ReviewWorkflow
from app.recon.routers.invoices import transform_invoice
from app.recon.schemas import BankCreditMatchRequest, BankCreditResponse, InvoiceResponse

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_capability("bank_credits"))])


def transform_bank_credit(model: BankCreditModel) -> BankCreditResponse:
    return BankCreditResponse(
        id=model.id,
        amount=model.amount,
        currency=model.currency,
        value_date=model.value_date,
        payer_name=model.payer_name,
        bank_ref=model.bank_ref,
        memo=model.memo,
        source_mailbox=model.source_mailbox,
        message_id=model.message_id,
        matched_invoice_id=model.matched_invoice_id,
        matched_amount=model.matched_amount,
        confidence=model.confidence,
        status=model.status,
        closed_reason=model.closed_reason,
        received_at=model.received_at,
        created_at=model.created_at,
    )


# ── GET /api/bank-credits ───────────────────────────────────────────────────
@router.get("/bank-credits", response_model=List[BankCreditResponse])
def list_bank_credits(
    status: Optional[str] = None,
    unmatched: bool = False,
    min_confidence: Optional[float] = Query(None, ge=0, le=1),
    db: Session = Depends(get_db),
):
    query = db.query(BankCreditModel)
    if status:
        query = query.filter(BankCreditModel.status == status.upper())
    if unmatched:
        query = query.filter(BankCreditModel.matched_invoice_id.is_(None))
    if min_confidence is not None:
        query = query.filter(BankCreditModel.confidence >= min_confidence)
    credits = query.order_by(BankCreditModel.created_at.desc()).all()
    return [transform_bank_credit(c) for c in credits]


# ── GET /api/bank-credits/{credit_id} ───────────────────────────────────────
@router.get("/bank-credits/{credit_id}", response_model=BankCreditResponse)
def get_bank_credit(credit_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_bank_credit(workflow.get_bank_credit(credit_id))


# ── GET /api/bank-credits/{credit_id}/suggestions ───────────────────────────
@router.get("/bank-credits/{credit_id}/suggestions", response_model=List[InvoiceResponse])
def bank_credit_suggestions(
    credit_id: str,
    workflow: ReviewWorkflow = Depends(get_workflow),
    db: Session = Depends(get_db),
):
    credit = workflow.get_bank_credit(credit_id)
    return [transform_invoice(inv) for inv in suggest_invoices(db, credit.amount)]


# ── POST /api/bank-credits/{credit_id}/match ────────────────────────────────
@router.post("/bank-credits/{credit_id}/match", response_model=BankCreditResponse)
def match_bank_credit(
    credit_id: str,
    req: BankCreditMatchRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
    user: str = Depends(get_current_user),
):
    """Apply the credit to an invoice"""
    credit = workflow.match_bank_credit(credit_id, req.invoice_id, user, amount=req.amount)
    return transform_bank_credit(credit)


# ── POST /api/bank-credits/{credit_id}/not-ours ─────────────────────────────
@router.post("/bank-credits/{credit_id}/not-ours", response_model=BankCreditResponse)
def mark_not_ours(
    credit_id: str,
    workflow: ReviewWorkflow = Depends(get_workflow),
    user: str = Depends(get_current_user),
):
    return transform_bank_credit(workflow.mark_not_ours(credit_id, user))


# ── POST /api/bank-credits/{credit_id}/flag ─────────────────────────────────
@router.post("/bank-credits/{credit_id}/flag", response_model=BankCreditResponse)
def flag_bank_credit(credit_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_bank_credit(workflow.flag_bank_credit(credit_id))


# ── POST /api/bank-credits/{credit_id}/unmatch ──────────────────────────────
@router.post("/bank-credits/{credit_id}/unmatch", response_model=BankCreditResponse)
def unmatch_bank_credit(credit_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_bank_credit(workflow.unmatch_bank_credit(credit_id))


# ── POST /api/bank-credits/{credit_id}/reextract ────────────────────────────
@router.post("/bank-credits/{credit_id}/reextract", response_model=BankCreditResponse)
def reextract_bank_credit(credit_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_bank_credit(workflow.reextract_bank_credit(credit_id))

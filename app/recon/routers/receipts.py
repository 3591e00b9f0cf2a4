"""
Receipt (payment slip) review API router
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.recon.database import get_db
from app.recon.deps import get_current_user, get_mailbox, get_workflow, require_capability
from app.recon.errors import ValidationFailure
from app.recon.mailbox import Mailbox
from app.recon.models import ReceiptModel
from app.recon.pipeline.matcher import suggest_invoices
from app.recon.pipeline.review import ReviewWorkflow
from app.recon.routers.invoices import transform_invoice
from app.recon.schemas import (
    InvoiceResponse,
    ReceiptMatchRequest,
    ReceiptResponse,
    RejectRequest,
    VerifyRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_capability("receipts"))])


def transform_receipt(model: ReceiptModel) -> ReceiptResponse:
    return ReceiptResponse(
        id=model.id,
        invoice_id=model.invoice_id,
        invoice_no=model.invoice_no,
        amount=model.amount,
        matched_amount=model.matched_amount,
        message_id=model.message_id,
        thread_id=model.thread_id,
        file_name=model.file_name,
        file_type=model.file_type,
        file_size=model.file_size,
        payer_name=model.payer_name,
        payer_email=model.payer_email,
        confidence=model.confidence,
        status=model.status,
        reviewed_by=model.reviewed_by,
        reviewed_at=model.reviewed_at,
        review_note=model.review_note,
        received_at=model.received_at,
        created_at=model.created_at,
    )


# ── GET /api/receipts ───────────────────────────────────────────────────────
@router.get("/receipts", response_model=List[ReceiptResponse])
def list_receipts(
    status: Optional[str] = None,
    unmatched: bool = False,
    min_confidence: Optional[float] = Query(None, ge=0, le=1),
    db: Session = Depends(get_db),
):
    query = db.query(ReceiptModel)
    if status:
        query = query.filter(ReceiptModel.status == status.upper())
    if unmatched:
        query = query.filter(ReceiptModel.invoice_id.is_(None))
    if min_confidence is not None:
        query = query.filter(ReceiptModel.confidence >= min_confidence)
    receipts = query.order_by(ReceiptModel.created_at.desc()).all()
    return [transform_receipt(r) for r in receipts]


# ── GET /api/receipts/{receipt_id} ──────────────────────────────────────────
@router.get("/receipts/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(receipt_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_receipt(workflow.get_receipt(receipt_id))


# ── GET /api/receipts/{receipt_id}/suggestions ──────────────────────────────
@router.get("/receipts/{receipt_id}/suggestions", response_model=List[InvoiceResponse])
def receipt_suggestions(
    receipt_id: str,
    workflow: ReviewWorkflow = Depends(get_workflow),
    db: Session = Depends(get_db),
):
    """Open invoices closest to the slip amount"""
    receipt = workflow.get_receipt(receipt_id)
    return [transform_invoice(inv) for inv in suggest_invoices(db, receipt.applicable_amount())]


# ── POST /api/receipts/{receipt_id}/match ───────────────────────────────────
@router.post("/receipts/{receipt_id}/match", response_model=ReceiptResponse)
def match_receipt(
    receipt_id: str,
    req: ReceiptMatchRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    return transform_receipt(workflow.match_receipt(receipt_id, req.invoice_id, req.amount))


# ── POST /api/receipts/{receipt_id}/unmatch ─────────────────────────────────
@router.post("/receipts/{receipt_id}/unmatch", response_model=ReceiptResponse)
def unmatch_receipt(receipt_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_receipt(workflow.unmatch_receipt(receipt_id))


# ── POST /api/receipts/{receipt_id}/verify ──────────────────────────────────
@router.post("/receipts/{receipt_id}/verify", response_model=ReceiptResponse)
def verify_receipt(
    receipt_id: str,
    req: Optional[VerifyRequest] = None,
    workflow: ReviewWorkflow = Depends(get_workflow),
    user: str = Depends(get_current_user),
):
    """Confirm the slip and apply its amount to the linked invoice"""
    note = req.review_note if req else None
    return transform_receipt(workflow.verify_receipt(receipt_id, user, note))


# ── POST /api/receipts/{receipt_id}/reject ──────────────────────────────────
@router.post("/receipts/{receipt_id}/reject", response_model=ReceiptResponse)
def reject_receipt(
    receipt_id: str,
    req: RejectRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
    user: str = Depends(get_current_user),
):
    return transform_receipt(workflow.reject_receipt(receipt_id, user, req.reason, req.review_note))


# ── POST /api/receipts/{receipt_id}/reextract ───────────────────────────────
@router.post("/receipts/{receipt_id}/reextract", response_model=ReceiptResponse)
def reextract_receipt(receipt_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    return transform_receipt(workflow.reextract_receipt(receipt_id))


# ── GET /api/receipts/{receipt_id}/file ─────────────────────────────────────
@router.get("/receipts/{receipt_id}/file")
def receipt_file(
    receipt_id: str,
    workflow: ReviewWorkflow = Depends(get_workflow),
    mailbox: Mailbox = Depends(get_mailbox),
):
    """Slip bytes, fetched from the mailbox"""
    receipt = workflow.get_receipt(receipt_id)
    if not receipt.attachment_id:
        raise ValidationFailure("No slip attached", receipt_id=receipt_id)
    data = mailbox.get_attachment(receipt.message_id, receipt.attachment_id)
    return Response(
        content=data,
        media_type=receipt.file_type,
        headers={"Content-Disposition": f'inline; filename="{receipt.file_name}"'},
    )

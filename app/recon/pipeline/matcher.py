"""
Candidate matcher — ranks open invoices by how close their total is to an
evidence amount. Advisory only; nothing is persisted.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.recon.models import InvoiceModel, InvoiceStatus

MAX_SUGGESTIONS = 5


def rank_invoices(
    invoices: list[InvoiceModel], amount: Optional[Decimal], limit: int = MAX_SUGGESTIONS
) -> list[InvoiceModel]:
    target = Decimal(amount) if amount is not None else Decimal("0")
    ranked = sorted(
        invoices,
        key=lambda inv: (abs(Decimal(inv.total) - target), inv.invoice_no),
    )
    return ranked[:limit]


def suggest_invoices(
    db: Session, amount: Optional[Decimal], limit: int = MAX_SUGGESTIONS
) -> list[InvoiceModel]:
    candidates = (
        db.query(InvoiceModel)
        .filter(InvoiceModel.status.notin_(InvoiceStatus.CLOSED))
        .all()
    )
    return rank_invoices(candidates, amount, limit)

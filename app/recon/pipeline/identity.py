"""
Evidence identity: the deduplication key of a piece of evidence.

A slip is identified by ``(message_id, file_name)``, a bank credit by its
``message_id``. Re-ingesting the same mail refreshes the existing row
instead of creating a second one.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.recon.models import (
    BankCreditModel,
    BankCreditStatus,
    ReceiptModel,
    ReceiptStatus,
)

logger = logging.getLogger(__name__)

RECEIPT = "receipt"
BANK_CREDIT = "bank_credit"

EvidenceRow = Union[ReceiptModel, BankCreditModel]

_MODELS = {RECEIPT: ReceiptModel, BANK_CREDIT: BankCreditModel}
_OPEN_STATUS = {RECEIPT: ReceiptStatus.SUBMITTED, BANK_CREDIT: BankCreditStatus.UNMATCHED}

# Once evidence has been reviewed these belong to the reviewer, not the collector.
_REVIEWED_FIELDS = {"amount", "currency", "confidence", "invoice_id", "invoice_no"}


@dataclass(frozen=True)
class EvidenceIdentity:
    kind: str
    message_id: str
    file_name: Optional[str] = None

    @classmethod
    def for_receipt(cls, message_id: str, file_name: str) -> EvidenceIdentity:
        return cls(RECEIPT, message_id, file_name)

    @classmethod
    def for_bank_credit(cls, message_id: str) -> EvidenceIdentity:
        return cls(BANK_CREDIT, message_id)

    @classmethod
    def of(cls, row: EvidenceRow) -> EvidenceIdentity:
        if isinstance(row, ReceiptModel):
            return cls.for_receipt(row.message_id, row.file_name)
        return cls.for_bank_credit(row.message_id)

    def key(self) -> tuple:
        if self.kind == RECEIPT:
            return (self.message_id, self.file_name)
        return (self.message_id,)

    def model(self) -> type:
        return _MODELS[self.kind]

    def where(self) -> list:
        model = self.model()
        clauses = [model.message_id == self.message_id]
        if self.kind == RECEIPT:
            clauses.append(model.file_name == self.file_name)
        return clauses

    def columns(self) -> dict[str, Any]:
        cols = {"message_id": self.message_id}
        if self.kind == RECEIPT:
            cols["file_name"] = self.file_name
        return cols


def find(db: Session, identity: EvidenceIdentity) -> Optional[EvidenceRow]:
    return db.query(identity.model()).filter(*identity.where()).first()


def _refresh(row: EvidenceRow, identity: EvidenceIdentity, values: dict[str, Any]) -> None:
    reviewed = row.status != _OPEN_STATUS[identity.kind]
    for name, value in values.items():
        if value is None:
            continue
        if reviewed and name in _REVIEWED_FIELDS:
            continue
        if name == "invoice_id" and row.invoice_id and row.invoice_id != value:
            continue
        setattr(row, name, value)


def upsert(db: Session, identity: EvidenceIdentity, values: dict[str, Any]) -> tuple[EvidenceRow, bool]:
    """Insert or refresh the evidence row for *identity*.

    Returns ``(row, created)``. The caller owns the surrounding transaction.
    """
    row = find(db, identity)
    if row is not None:
        _refresh(row, identity, values)
        db.flush()
        return row, False

    row = identity.model()(id=str(uuid.uuid4()), **identity.columns(), **values)
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        # a concurrent pass inserted the same key first
        logger.info("Evidence %s inserted concurrently; refreshing", identity.key())
        row = find(db, identity)
        if row is None:
            raise
        _refresh(row, identity, values)
        db.flush()
        return row, False
    return row, True

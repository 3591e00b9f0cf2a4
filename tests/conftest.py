"""
Shared pytest fixtures — in-memory SQLite, a scripted mailbox and the
FastAPI TestClient.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.main import app
from app.recon.database import Base, get_db
from app.recon.deps import get_extractor, get_mailbox, get_runtime_settings, get_settings
from app.recon.mailbox import (
    MailMessage,
    Mailbox,
    MailboxUnavailable,
    MessageNotFound,
    MessageSummary,
    MimePart,
)
from app.recon.models import InvoiceModel, InvoiceStatus
from app.recon.pipeline.amount import AmountExtractor
from app.recon.pipeline.ledger import ReconciliationLedger
from app.recon.pipeline.signals import BANK_CREDIT_QUERY, SLIP_QUERY
from app.recon.runtime import MAILBOX_ADDRESS, RuntimeSettings

OUR_ADDRESS = "billing@ourco.com"

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


class FakeMailbox(Mailbox):
    """In-memory mailbox. Messages are registered per search query."""

    def __init__(self, address: str = OUR_ADDRESS):
        self.address = address
        self.messages: Dict[str, MailMessage] = {}
        self.threads: Dict[str, List[MailMessage]] = {}
        self.attachments: Dict[Tuple[str, str], bytes] = {}
        self.results: Dict[str, List[str]] = {SLIP_QUERY: [], BANK_CREDIT_QUERY: []}
        self.failures: Dict[str, Exception] = {}
        self.searches: List[Tuple[str, int, int]] = []

    # ── scripting helpers ──

    def add_slip_reply(
        self,
        invoice_no: str = "INV-2025-001",
        slip_text: str = "Amount: LKR 12,345.00",
        file_name: str = "slip.pdf",
        mime_type: str = "application/pdf",
        size: int = 50_000,
        sender: str = "Acme Ltd <pay@acme.com>",
        subject: Optional[str] = None,
        authentic: bool = True,
        outbound: Optional[MailMessage] = None,
        extra_parts: Optional[List[MimePart]] = None,
    ) -> MailMessage:
        """Client reply with one slip attachment in a thread started by us."""
        msg_id = f"m-{uuid.uuid4().hex[:8]}"
        thread_id = f"t-{msg_id}"
        attachment_id = f"a-{msg_id}"
        parts = [
            MimePart(mime_type="text/plain", size=120),
            MimePart(mime_type=mime_type, filename=file_name, attachment_id=attachment_id, size=size),
        ] + (extra_parts or [])
        reply = MailMessage(
            id=msg_id,
            thread_id=thread_id,
            headers={"subject": subject or f"Re: Invoice {invoice_no}", "from": sender},
            snippet="Please find the payment attached",
            label_ids=["INBOX"],
            received_at=datetime(2025, 3, 1, 9, 30),
            payload=MimePart(mime_type="multipart/mixed", parts=parts),
        )
        if outbound is None and authentic:
            outbound = self.outbound(thread_id, invoice_no)
        self.messages[msg_id] = reply
        self.threads[thread_id] = ([outbound] if outbound else []) + [reply]
        self.attachments[(msg_id, attachment_id)] = slip_text.encode()
        self.results[SLIP_QUERY].append(msg_id)
        return reply

    @staticmethod
    def outbound(thread_id: str, invoice_no: str, labels=("SENT",), sender: str = OUR_ADDRESS) -> MailMessage:
        return MailMessage(
            id=f"o-{thread_id}",
            thread_id=thread_id,
            headers={"subject": f"Invoice {invoice_no}", "from": sender},
            label_ids=list(labels),
        )

    def add_bank_credit(
        self,
        snippet: str = "Your account has been credited with LKR 5,000.00",
        subject: str = "Credit alert",
        sender: str = "alerts@bank.example",
    ) -> MailMessage:
        msg_id = f"b-{uuid.uuid4().hex[:8]}"
        message = MailMessage(
            id=msg_id,
            thread_id=f"t-{msg_id}",
            headers={"subject": subject, "from": sender},
            snippet=snippet,
            label_ids=["INBOX"],
            received_at=datetime(2025, 3, 2, 8, 0),
        )
        self.messages[msg_id] = message
        self.results[BANK_CREDIT_QUERY].append(msg_id)
        return message

    # ── Mailbox contract ──

    def _check(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]

    def search(self, query, window_days, max_results=50):
        self.searches.append((query, window_days, max_results))
        return [
            MessageSummary(id=i, thread_id=self.messages[i].thread_id)
            for i in self.results.get(query, [])[:max_results]
        ]

    def get(self, message_id):
        self._check(message_id)
        if message_id not in self.messages:
            raise MessageNotFound(message_id)
        return self.messages[message_id]

    def get_thread(self, thread_id):
        self._check(thread_id)
        if thread_id not in self.threads:
            raise MessageNotFound(thread_id)
        return self.threads[thread_id]

    def get_attachment(self, message_id, attachment_id):
        self._check(attachment_id)
        if (message_id, attachment_id) not in self.attachments:
            raise MessageNotFound(attachment_id)
        return self.attachments[(message_id, attachment_id)]


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return Settings(MAILBOX_ADDRESS=OUR_ADDRESS, DEFAULT_CURRENCY="USD")


@pytest.fixture()
def mailbox():
    return FakeMailbox()


@pytest.fixture()
def extractor():
    # slips in tests carry plain text, so "PDF" and "image" decode directly
    return AmountExtractor(
        pdf_to_text=lambda data: data.decode(),
        image_to_text=lambda data: data.decode(),
    )


@pytest.fixture()
def runtime():
    return RuntimeSettings(_Session, defaults={MAILBOX_ADDRESS: OUR_ADDRESS})


@pytest.fixture()
def ledger():
    return ReconciliationLedger()


@pytest.fixture()
def make_invoice(db):
    counter = {"n": 0}

    def _make(total="100.00", invoice_no=None, status=InvoiceStatus.SENT, collected="0.00"):
        counter["n"] += 1
        invoice = InvoiceModel(
            id=str(uuid.uuid4()),
            invoice_no=invoice_no or f"INV-2099-{counter['n']:03d}",
            currency="USD",
            total=Decimal(total),
            collected=Decimal(collected),
            status=status,
        )
        db.add(invoice)
        db.commit()
        return invoice

    return _make


@pytest.fixture()
def client(db, mailbox, extractor, runtime, settings):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_mailbox] = lambda: mailbox
    app.dependency_overrides[get_extractor] = lambda: extractor
    app.dependency_overrides[get_runtime_settings] = lambda: runtime
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def outage():
    return MailboxUnavailable("Gmail unavailable (503)")

"""
Evidence collector.

Two passes over the reconciling mailbox:

* slip pass: customer replies to invoice mails carrying a payment slip
  (PDF or image attachment) become ``Receipt`` rows;
* bank-credit pass: bank notification mails become ``BankCredit`` rows.

Each evidence row is committed on its own, so one bad message never costs the
others. A provider outage aborts the pass with ``SyncAborted`` carrying the
number of rows already saved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy.orm import Session

from app.config import Settings
from app.recon.errors import SyncAborted
from app.recon.mailbox import MailboxError, MailboxUnavailable, MailMessage, Mailbox, MimePart
from app.recon.models import InvoiceModel
from app.recon.pipeline import identity as evidence_identity
from app.recon.pipeline.amount import AmountExtractor, find_credit_amount
from app.recon.pipeline.identity import EvidenceIdentity
from app.recon.pipeline.signals import (
    BANK_CREDIT_QUERY,
    SLIP_QUERY,
    email_address,
    find_invoice_ref,
    is_bounce,
    is_slip_content_type,
    is_too_small,
    looks_like_slip,
    receipt_confidence,
)
from app.recon.runtime import RuntimeSettings

logger = logging.getLogger(__name__)

SENT_LABEL = "SENT"


@dataclass
class SyncResult:
    count: int = 0
    scanned: int = 0
    skipped: int = 0


def iter_attachments(payload: MimePart) -> Iterator[MimePart]:
    """Slip-shaped leaves of a MIME tree, depth-first, left to right."""
    stack = [payload]
    while stack:
        part = stack.pop()
        if not part.is_leaf:
            stack.extend(reversed(part.parts))
            continue
        if part.attachment_id and is_slip_content_type(part.mime_type):
            yield part


class EvidenceCollector:
    def __init__(
        self,
        db: Session,
        mailbox: Mailbox,
        extractor: AmountExtractor,
        runtime: RuntimeSettings,
        settings: Settings,
    ):
        self.db = db
        self.mailbox = mailbox
        self.extractor = extractor
        self.runtime = runtime
        self.settings = settings

    # ── slip pass ────────────────────────────────────────────────────────

    def sync_slips(self) -> SyncResult:
        result = SyncResult()
        own_address = self.runtime.mailbox_address() or (self.mailbox.address or "").lower()
        try:
            summaries = self.mailbox.search(
                SLIP_QUERY, self.settings.SLIP_LOOKBACK_DAYS, self.settings.MAILBOX_MAX_RESULTS
            )
            for summary in summaries:
                result.scanned += 1
                before = result.count
                try:
                    self._collect_slips(summary.id, own_address, result)
                except MailboxUnavailable:
                    raise
                except Exception as exc:
                    self.db.rollback()
                    logger.warning("Skipping message %s: %s", summary.id, exc, exc_info=True)
                if result.count == before:
                    result.skipped += 1
        except MailboxUnavailable as exc:
            logger.error("Slip sync aborted after %d receipts: %s", result.count, exc)
            raise SyncAborted(result.count, exc) from exc

        logger.info(
            "Slip sync done: %d receipts from %d messages (%d skipped)",
            result.count, result.scanned, result.skipped,
        )
        return result

    def _collect_slips(self, message_id: str, own_address: str, result: SyncResult) -> None:
        message = self.mailbox.get(message_id)
        if is_bounce(message.sender, message.subject):
            logger.debug("Message %s is a bounce", message_id)
            return

        invoice_no = find_invoice_ref(message.subject, message.snippet)
        if not invoice_no:
            logger.debug("Message %s has no invoice reference", message_id)
            return
        invoice = self.db.query(InvoiceModel).filter(InvoiceModel.invoice_no == invoice_no).first()
        if invoice is None:
            logger.info("Message %s names unknown invoice %s", message_id, invoice_no)
            return
        if not self._is_reply_to_our_invoice(message, invoice_no, own_address):
            logger.info("Message %s does not answer an invoice mail for %s", message_id, invoice_no)
            return

        payer = message.reply_to or message.sender
        for index, part in enumerate(iter_attachments(message.payload)):
            if is_too_small(part):
                logger.debug("Attachment %s on %s below size floor", part.filename, message_id)
                continue
            if not looks_like_slip(part.filename, message.subject, message.snippet, invoice_no):
                continue
            # Gmail attachment ids change between fetches; the part position does not
            file_name = part.filename or f"attachment-{index}"
            try:
                self._save_slip(message, part, file_name, invoice, payer)
            except MailboxUnavailable:
                raise
            except Exception as exc:
                self.db.rollback()
                logger.warning("Skipping attachment %s on %s: %s", file_name, message_id, exc, exc_info=True)
                continue
            result.count += 1

    def _save_slip(
        self, message: MailMessage, part: MimePart, file_name: str, invoice: InvoiceModel, payer: str
    ) -> None:
        data = self.mailbox.get_attachment(message.id, part.attachment_id)
        amount = self.extractor.extract(data, part.mime_type)
        values = {
            "invoice_id": invoice.id,
            "invoice_no": invoice.invoice_no,
            "amount": amount,
            "thread_id": message.thread_id,
            "attachment_id": part.attachment_id,
            "file_type": part.mime_type,
            "file_size": part.size or len(data),
            "payer_name": payer,
            "payer_email": email_address(payer),
            "confidence": receipt_confidence(invoice_known=True),
            "received_at": message.received_at,
        }
        identity = EvidenceIdentity.for_receipt(message.id, file_name)
        row, created = evidence_identity.upsert(self.db, identity, values)
        self.db.commit()
        logger.info(
            "%s receipt %s for %s (amount=%s)",
            "Created" if created else "Refreshed", row.id, invoice.invoice_no, amount,
        )

    def _is_reply_to_our_invoice(self, message: MailMessage, invoice_no: str, own_address: str) -> bool:
        """The thread must hold an outbound mail whose subject names *invoice_no*."""
        if not message.thread_id:
            return False
        try:
            thread = self.mailbox.get_thread(message.thread_id)
        except MailboxUnavailable:
            raise
        except MailboxError as exc:
            logger.warning("Thread lookup failed for %s: %s", message.id, exc)
            return False

        for sent in thread:
            outbound = SENT_LABEL in sent.label_ids or (
                own_address and email_address(sent.sender) == own_address
            )
            if outbound and find_invoice_ref(sent.subject) == invoice_no:
                return True
        return False

    # ── bank-credit pass ─────────────────────────────────────────────────

    def sync_bank_credits(self) -> SyncResult:
        result = SyncResult()
        source = self.runtime.mailbox_address() or (self.mailbox.address or "").lower()
        try:
            summaries = self.mailbox.search(
                BANK_CREDIT_QUERY, self.settings.BANK_LOOKBACK_DAYS, self.settings.MAILBOX_MAX_RESULTS
            )
            for summary in summaries:
                result.scanned += 1
                try:
                    saved = self._collect_bank_credit(summary.id, source)
                except MailboxUnavailable:
                    raise
                except Exception as exc:
                    self.db.rollback()
                    logger.warning("Skipping message %s: %s", summary.id, exc, exc_info=True)
                    saved = False
                if saved:
                    result.count += 1
                else:
                    result.skipped += 1
        except MailboxUnavailable as exc:
            logger.error("Bank-credit sync aborted after %d credits: %s", result.count, exc)
            raise SyncAborted(result.count, exc) from exc

        logger.info(
            "Bank-credit sync done: %d credits from %d messages (%d skipped)",
            result.count, result.scanned, result.skipped,
        )
        return result

    def _collect_bank_credit(self, message_id: str, source: str) -> bool:
        message = self.mailbox.get(message_id)
        # no bounce gate: bank alerts are commonly sent from noreply@ addresses
        parsed = find_credit_amount(message.snippet, self.settings.DEFAULT_CURRENCY)
        if parsed is None:
            logger.debug("Message %s carries no credit amount", message_id)
            return False
        amount, currency = parsed

        values = {
            "amount": amount,
            "currency": currency,
            "value_date": message.received_at,
            "payer_name": message.sender,
            "bank_ref": message.subject,
            "memo": message.snippet,
            "source_mailbox": source or None,
            "received_at": message.received_at,
            "confidence": 0.5,
        }
        row, created = evidence_identity.upsert(
            self.db, EvidenceIdentity.for_bank_credit(message.id), values
        )
        self.db.commit()
        logger.info(
            "%s bank credit %s: %s %s", "Created" if created else "Refreshed", row.id, currency, amount
        )
        return True

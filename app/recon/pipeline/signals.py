"""
Rule-based gates applied to mailbox messages before they become evidence.

Bounce detection, invoice reference lookup, slip keyword heuristics and
attachment size floors. All deterministic, no I/O.
"""
from __future__ import annotations

import re
from email.utils import parseaddr
from typing import Optional

from app.recon.mailbox import MimePart

BOUNCE_SENDER_RE = re.compile(
    r"(mailer-daemon|postmaster|no-reply|noreply|do-not-reply|bounce)@", re.IGNORECASE
)
BOUNCE_SUBJECT_RE = re.compile(
    r"(delivery status notification|undelivered mail|mail delivery failed|returned mail)",
    re.IGNORECASE,
)

INVOICE_REF_RE = re.compile(r"INV[-_ ]?(\d{4})[-_ ]?(\d{3,})", re.IGNORECASE)

SLIP_KEYWORD_RE = re.compile(
    r"(slip|receipt|payment|transfer|deposit|bank-in|bank in|remittance)", re.IGNORECASE
)

# Attachments below these sizes are logos and signatures, not slips.
MIN_ATTACHMENT_BYTES: dict[str, int] = {
    "image/": 20_000,
    "application/pdf": 5_000,
}

SLIP_CONTENT_TYPES = ("application/pdf", "image/")

# Gmail queries for the two collector passes
SLIP_QUERY = "has:attachment in:inbox subject:INV-"
BANK_CREDIT_QUERY = '(subject:(credit OR deposit OR "payment received") OR from:(bank))'


def is_bounce(sender: str, subject: str) -> bool:
    return bool(BOUNCE_SENDER_RE.search(sender or "") or BOUNCE_SUBJECT_RE.search(subject or ""))


def find_invoice_ref(*texts: str) -> Optional[str]:
    """First invoice reference in *texts*, normalised to ``INV-YYYY-NNN``."""
    m = INVOICE_REF_RE.search(" ".join(t or "" for t in texts))
    if not m:
        return None
    return f"INV-{m.group(1)}-{m.group(2)}"


def email_address(header_value: str) -> str:
    return parseaddr(header_value or "")[1].lower()


def is_slip_content_type(mime_type: str) -> bool:
    mime_type = (mime_type or "").lower()
    return any(mime_type.startswith(t) for t in SLIP_CONTENT_TYPES)


def is_too_small(part: MimePart) -> bool:
    if part.size <= 0:  # unknown size
        return False
    mime_type = part.mime_type.lower()
    for prefix, floor in MIN_ATTACHMENT_BYTES.items():
        if mime_type.startswith(prefix):
            return part.size < floor
    return False


def looks_like_slip(file_name: str, subject: str, snippet: str, invoice_no: Optional[str]) -> bool:
    if invoice_no:
        return True
    return bool(SLIP_KEYWORD_RE.search(f"{file_name} {subject} {snippet}"))


def receipt_confidence(invoice_known: bool) -> float:
    return 0.9 if invoice_known else 0.6

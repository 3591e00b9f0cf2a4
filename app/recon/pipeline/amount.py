"""
Amount extraction from payment evidence.

Slips arrive as PDFs or images; their text comes from pluggable providers
(see ``text.py``) and is scanned for an amount in three passes: single
lines, a two-line window for values wrapped under their label, then the
whole text. Extraction never raises: a provider failure or a document
without an amount yields ``None``.
"""
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TextProvider = Callable[[bytes], str]

_CURRENCY = r"(?:LKR|Rs\.?|USD|GBP|EUR|AUD|CAD)"
_TOKEN = rf"(?<![A-Za-z]){_CURRENCY}"
_NUMBER = r"(\d[\d,]*(?:\.\d{1,2})?)"

# "Amount", "Amount: LKR", "Amount (USD)", or a bare currency token, then a number.
# A number with neither a label nor a currency in front is not an amount.
AMOUNT_RE = re.compile(
    rf"(?:\bamount\s*[:\-]?\s*(?:\(\s*{_CURRENCY}\s*\)\s*|{_TOKEN}\s*)?"
    rf"|\(\s*{_CURRENCY}\s*\)\s*"
    rf"|{_TOKEN}\s*)"
    rf"{_NUMBER}",
    re.IGNORECASE,
)

# Bank notification snippets: currency optional, number mandatory.
CREDIT_RE = re.compile(rf"(?:({_TOKEN})\s?)?{_NUMBER}")


def parse_number(raw: str) -> Optional[Decimal]:
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def _first_amount(text: str) -> Optional[Decimal]:
    for m in AMOUNT_RE.finditer(text):
        value = parse_number(m.group(1))
        if value is not None:
            return value
    return None


def find_amount(text: str) -> Optional[Decimal]:
    """Return the first amount found in *text*, or ``None``."""
    raw = text or ""
    lines = [ln.strip() for ln in raw.splitlines() if ln.strip()]

    for line in lines:
        value = _first_amount(line)
        if value is not None:
            return value

    for i, line in enumerate(lines):
        following = lines[i + 1] if i + 1 < len(lines) else ""
        value = _first_amount(f"{line} {following}")
        if value is not None:
            return value

    return _first_amount(raw)


def normalize_currency(token: Optional[str], default: str) -> str:
    if not token:
        return default
    token = token.upper().rstrip(".")
    return "LKR" if token == "RS" else token


def find_credit_amount(snippet: str, default_currency: str = "USD") -> Optional[tuple[Decimal, str]]:
    """Amount and currency of a bank credit notification snippet.

    A match that carries a currency token wins over a bare number.
    """
    chosen = None
    for m in CREDIT_RE.finditer(snippet or ""):
        if m.group(1):
            chosen = m
            break
        if chosen is None:
            chosen = m
    if chosen is None:
        return None
    amount = parse_number(chosen.group(2))
    if amount is None or amount <= 0:
        return None
    return amount, normalize_currency(chosen.group(1), default_currency)


class AmountExtractor:
    """``extract(bytes, content_type) -> Decimal | None``"""

    def __init__(
        self,
        pdf_to_text: Optional[TextProvider] = None,
        image_to_text: Optional[TextProvider] = None,
    ):
        self.pdf_to_text = pdf_to_text
        self.image_to_text = image_to_text

    def extract_text(self, data: bytes, content_type: str) -> Optional[str]:
        content_type = (content_type or "").lower()
        if content_type.startswith("text/"):
            return data.decode("utf-8", errors="replace")
        if content_type.startswith("application/pdf"):
            provider = self.pdf_to_text
        elif content_type.startswith("image/"):
            provider = self.image_to_text
        else:
            return None
        if provider is None:
            logger.debug("No text provider for %s", content_type)
            return None
        try:
            return provider(data)
        except Exception as exc:
            logger.warning("Text extraction failed for %s: %s", content_type, exc)
            return None

    def extract(self, data: bytes, content_type: str) -> Optional[Decimal]:
        text = self.extract_text(data, content_type)
        if not text:
            return None
        return find_amount(text)

"""
Unit tests for the reconciliation pipeline — amount extraction, snippet
parsing, mail signals, MIME walk, evidence identity and the matcher.
"""
from decimal import Decimal

import pytest

from app.recon.mailbox import MimePart
from app.recon.models import BankCreditModel, InvoiceStatus, ReceiptModel, ReceiptStatus
from app.recon.pipeline.amount import AmountExtractor, find_amount, find_credit_amount
from app.recon.pipeline.collector import iter_attachments
from app.recon.pipeline.identity import EvidenceIdentity, upsert
from app.recon.pipeline.matcher import rank_invoices, suggest_invoices
from app.recon.pipeline.signals import (
    find_invoice_ref,
    is_bounce,
    is_too_small,
    looks_like_slip,
    receipt_confidence,
)


# =====================================================================
# Amount extractor
# =====================================================================
class TestFindAmount:
    def test_labelled_with_currency(self):
        assert find_amount("Amount: LKR 12,345.00") == Decimal("12345.00")

    def test_currency_token_only(self):
        assert find_amount("Total paid Rs. 2,500") == Decimal("2500")

    def test_currency_in_parens(self):
        assert find_amount("Amount (USD) 99.90") == Decimal("99.90")

    def test_value_wrapped_under_label(self):
        text = "Beneficiary: Our Co\nAmount (LKR)\n7,500.00\nThank you"
        assert find_amount(text) == Decimal("7500.00")

    def test_first_line_match_wins(self):
        text = "Transfer of EUR 40.00\nAmount: EUR 45.00"
        assert find_amount(text) == Decimal("40.00")

    def test_bare_numbers_are_not_amounts(self):
        assert find_amount("Ref 2024-001 dated 12/03, account 00123456") is None

    def test_empty(self):
        assert find_amount("") is None
        assert find_amount(None) is None


class TestAmountExtractor:
    def test_pdf_provider(self):
        ex = AmountExtractor(pdf_to_text=lambda data: "Amount: LKR 12,345.00")
        assert ex.extract(b"%PDF-", "application/pdf") == Decimal("12345.00")

    def test_image_provider(self):
        ex = AmountExtractor(image_to_text=lambda data: "Paid USD 80.00")
        assert ex.extract(b"\x89PNG", "image/png") == Decimal("80.00")

    def test_text_is_decoded(self):
        assert AmountExtractor().extract(b"Amount: GBP 12.50", "text/plain") == Decimal("12.50")

    def test_no_amount_pattern(self):
        ex = AmountExtractor(pdf_to_text=lambda data: "Thanks for your business")
        assert ex.extract(b"%PDF-", "application/pdf") is None

    def test_provider_failure_yields_none(self):
        def broken(data):
            raise RuntimeError("tesseract not installed")

        ex = AmountExtractor(image_to_text=broken)
        assert ex.extract(b"\x89PNG", "image/jpeg") is None

    def test_unknown_content_type(self):
        ex = AmountExtractor(pdf_to_text=lambda data: "Amount: USD 1.00")
        assert ex.extract(b"PK", "application/zip") is None

    def test_missing_provider(self):
        assert AmountExtractor().extract(b"%PDF-", "application/pdf") is None


class TestFindCreditAmount:
    def test_currency_token(self):
        assert find_credit_amount("Credited USD 1,200.50 to account 12345") == (Decimal("1200.50"), "USD")

    def test_token_preferred_over_earlier_number(self):
        assert find_credit_amount("Txn 4471: LKR 5,000.00 received") == (Decimal("5000.00"), "LKR")

    def test_rupee_normalised(self):
        assert find_credit_amount("Rs. 750 credited") == (Decimal("750"), "LKR")

    def test_default_currency(self):
        assert find_credit_amount("Deposit of 500 received", "AUD") == (Decimal("500"), "AUD")

    def test_no_number(self):
        assert find_credit_amount("Your statement is ready") is None

    def test_zero_is_not_a_credit(self):
        assert find_credit_amount("USD 0.00 credited") is None


# =====================================================================
# Signals
# =====================================================================
class TestSignals:
    @pytest.mark.parametrize("sender,subject", [
        ("Mail Delivery Subsystem <mailer-daemon@googlemail.com>", "Re: INV-2025-001"),
        ("postmaster@acme.com", "Hello"),
        ("client@acme.com", "Delivery Status Notification (Failure)"),
        ("client@acme.com", "Undelivered Mail Returned to Sender"),
    ])
    def test_bounces(self, sender, subject):
        assert is_bounce(sender, subject)

    def test_regular_reply_is_not_bounce(self):
        assert not is_bounce("Acme <pay@acme.com>", "Re: Invoice INV-2025-001")

    def test_invoice_ref_normalised(self):
        assert find_invoice_ref("Re: inv_2025_014 payment") == "INV-2025-014"
        assert find_invoice_ref("", "see INV2025001") == "INV-2025-001"
        assert find_invoice_ref("no reference here") is None

    def test_size_floor(self):
        assert is_too_small(MimePart(mime_type="image/png", size=19_999))
        assert not is_too_small(MimePart(mime_type="image/png", size=20_000))
        assert is_too_small(MimePart(mime_type="application/pdf", size=4_000))
        assert not is_too_small(MimePart(mime_type="application/pdf", size=0))

    def test_keyword_gate(self):
        assert looks_like_slip("bank-in.jpg", "hello", "", None)
        assert looks_like_slip("IMG_001.jpg", "Remittance advice", "", None)
        assert not looks_like_slip("IMG_001.jpg", "hello", "see attached", None)
        # an invoice reference bypasses the keyword gate
        assert looks_like_slip("IMG_001.jpg", "hello", "", "INV-2025-001")

    def test_confidence(self):
        assert receipt_confidence(True) == 0.9
        assert receipt_confidence(False) == 0.6


# =====================================================================
# MIME walk
# =====================================================================
class TestIterAttachments:
    def test_depth_first_left_to_right(self):
        payload = MimePart(mime_type="multipart/mixed", parts=[
            MimePart(mime_type="multipart/alternative", parts=[
                MimePart(mime_type="text/plain"),
                MimePart(mime_type="text/html"),
            ]),
            MimePart(mime_type="application/pdf", filename="a.pdf", attachment_id="1"),
            MimePart(mime_type="multipart/mixed", parts=[
                MimePart(mime_type="image/jpeg", filename="b.jpg", attachment_id="2"),
                MimePart(mime_type="application/pdf", filename="c.pdf", attachment_id="3"),
            ]),
            MimePart(mime_type="image/png", filename="d.png", attachment_id="4"),
        ])
        assert [p.filename for p in iter_attachments(payload)] == ["a.pdf", "b.jpg", "c.pdf", "d.png"]

    def test_skips_inline_and_non_slip_types(self):
        payload = MimePart(mime_type="multipart/mixed", parts=[
            MimePart(mime_type="image/png", filename="inline.png"),  # no attachment id
            MimePart(mime_type="application/zip", filename="x.zip", attachment_id="9"),
        ])
        assert list(iter_attachments(payload)) == []

    def test_deep_nesting(self):
        leaf = MimePart(mime_type="application/pdf", filename="deep.pdf", attachment_id="z")
        node = leaf
        for _ in range(2000):
            node = MimePart(mime_type="multipart/mixed", parts=[node])
        assert [p.filename for p in iter_attachments(node)] == ["deep.pdf"]


# =====================================================================
# Evidence identity
# =====================================================================
class TestEvidenceIdentity:
    def test_keys(self):
        assert EvidenceIdentity.for_receipt("m1", "slip.pdf").key() == ("m1", "slip.pdf")
        assert EvidenceIdentity.for_bank_credit("m1").key() == ("m1",)

    def test_upsert_receipt_is_idempotent(self, db):
        identity = EvidenceIdentity.for_receipt("m1", "slip.pdf")
        values = {"file_type": "application/pdf", "amount": Decimal("10.00"), "confidence": 0.6}
        row, created = upsert(db, identity, values)
        db.commit()
        again, created_again = upsert(db, identity, dict(values, amount=Decimal("12.00")))
        db.commit()

        assert created and not created_again
        assert again.id == row.id
        assert db.query(ReceiptModel).count() == 1
        assert again.amount == Decimal("12.00")

    def test_upsert_keeps_reviewed_fields(self, db):
        identity = EvidenceIdentity.for_receipt("m1", "slip.pdf")
        row, _ = upsert(db, identity, {"file_type": "application/pdf", "amount": Decimal("10.00")})
        row.status = ReceiptStatus.VERIFIED
        db.commit()

        upsert(db, identity, {"file_type": "application/pdf", "amount": Decimal("99.00"), "file_size": 60_000})
        db.commit()
        db.refresh(row)
        assert row.amount == Decimal("10.00")
        assert row.status == ReceiptStatus.VERIFIED
        assert row.file_size == 60_000

    def test_upsert_none_does_not_erase(self, db):
        identity = EvidenceIdentity.for_bank_credit("b1")
        upsert(db, identity, {"amount": Decimal("5.00"), "currency": "USD", "memo": "first"})
        db.commit()
        row, _ = upsert(db, identity, {"amount": Decimal("5.00"), "currency": "USD", "memo": None})
        db.commit()
        assert row.memo == "first"
        assert db.query(BankCreditModel).count() == 1

    def test_same_message_two_files(self, db):
        upsert(db, EvidenceIdentity.for_receipt("m1", "a.pdf"), {"file_type": "application/pdf"})
        upsert(db, EvidenceIdentity.for_receipt("m1", "b.pdf"), {"file_type": "application/pdf"})
        db.commit()
        assert db.query(ReceiptModel).count() == 2


# =====================================================================
# Candidate matcher
# =====================================================================
class TestMatcher:
    def test_closest_total_first(self, db, make_invoice):
        make_invoice("90.00")
        make_invoice("100.00")
        make_invoice("110.00")
        ranked = suggest_invoices(db, Decimal("101"))
        assert [inv.total for inv in ranked] == [Decimal("100.00"), Decimal("110.00"), Decimal("90.00")]

    def test_closed_invoices_excluded(self, db, make_invoice):
        make_invoice("100.00", status=InvoiceStatus.PAID)
        make_invoice("100.00", status=InvoiceStatus.CANCELED)
        open_inv = make_invoice("500.00", status=InvoiceStatus.OVERDUE)
        draft = make_invoice("1.00", status=InvoiceStatus.DRAFT)
        ids = [inv.id for inv in suggest_invoices(db, Decimal("100"))]
        assert ids == [draft.id, open_inv.id]

    def test_limit(self, db, make_invoice):
        for total in range(1, 9):
            make_invoice(f"{total}.00")
        assert len(suggest_invoices(db, Decimal("3"))) == 5

    def test_tie_break_on_invoice_no(self):
        class Inv:
            def __init__(self, no, total):
                self.invoice_no, self.total = no, Decimal(total)

        ranked = rank_invoices([Inv("INV-2025-002", "95"), Inv("INV-2025-001", "105")], Decimal("100"))
        assert [i.invoice_no for i in ranked] == ["INV-2025-001", "INV-2025-002"]

    def test_missing_amount_ranks_against_zero(self):
        class Inv:
            def __init__(self, no, total):
                self.invoice_no, self.total = no, Decimal(total)

        ranked = rank_invoices([Inv("A", "50"), Inv("B", "5")], None)
        assert [i.invoice_no for i in ranked] == ["B", "A"]

"""
Reconciliation pipeline.

collect (mailbox → evidence) → suggest (evidence → candidate invoices)
→ review (human decision) → ledger (exactly-once invoice update).
"""
from app.recon.pipeline.amount import AmountExtractor, find_amount, find_credit_amount  # noqa: F401
from app.recon.pipeline.collector import EvidenceCollector, SyncResult  # noqa: F401
from app.recon.pipeline.identity import EvidenceIdentity  # noqa: F401
from app.recon.pipeline.ledger import LedgerResult, ReconciliationLedger  # noqa: F401
from app.recon.pipeline.matcher import suggest_invoices  # noqa: F401
from app.recon.pipeline.review import ReviewWorkflow  # noqa: F401

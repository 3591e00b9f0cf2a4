"""
Payment-evidence reconciliation.

Mailbox evidence (payment slips, bank credit notices) → extracted amounts →
deduplicated evidence rows → reviewed matches → invoice ledger updates.
"""

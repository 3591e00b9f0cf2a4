"""
Mailbox sync API router
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config import Settings
from app.recon.database import get_db
from app.recon.deps import (
    get_capabilities,
    get_extractor,
    get_mailbox,
    get_runtime_settings,
    get_settings,
)
from app.recon.mailbox import Mailbox
from app.recon.pipeline.amount import AmountExtractor
from app.recon.pipeline.collector import EvidenceCollector, SyncResult
from app.recon.runtime import Capabilities, RuntimeSettings
from app.recon.schemas import SyncResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def get_collector(
    db: Session = Depends(get_db),
    mailbox: Mailbox = Depends(get_mailbox),
    extractor: AmountExtractor = Depends(get_extractor),
    runtime: RuntimeSettings = Depends(get_runtime_settings),
    cfg: Settings = Depends(get_settings),
) -> EvidenceCollector:
    return EvidenceCollector(db, mailbox, extractor, runtime, cfg)


def transform_sync_result(result: SyncResult) -> SyncResponse:
    return SyncResponse(count=result.count, scanned=result.scanned, skipped=result.skipped)


# ── POST /api/sync/receipts ─────────────────────────────────────────────────
@router.post("/sync/receipts", response_model=SyncResponse)
def sync_receipts(
    capabilities: Capabilities = Depends(get_capabilities),
    collector: EvidenceCollector = Depends(get_collector),
):
    """Pull payment slips from replies to our invoice mails"""
    capabilities.require("receipts")
    logger.info("Receipt sync requested")
    return transform_sync_result(collector.sync_slips())


# ── POST /api/sync/bank-credits ─────────────────────────────────────────────
@router.post("/sync/bank-credits", response_model=SyncResponse)
def sync_bank_credits(
    capabilities: Capabilities = Depends(get_capabilities),
    collector: EvidenceCollector = Depends(get_collector),
):
    """Pull bank credit notifications"""
    capabilities.require("bank_credits")
    logger.info("Bank-credit sync requested")
    return transform_sync_result(collector.sync_bank_credits())

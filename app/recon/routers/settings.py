"""
Runtime settings API router
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.recon.deps import get_runtime_settings
from app.recon.runtime import MAILBOX_ADDRESS, RuntimeSettings
from app.recon.schemas import MailboxAddressResponse, MailboxAddressUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/settings/mailbox-address ───────────────────────────────────────
@router.get("/settings/mailbox-address", response_model=MailboxAddressResponse)
def get_mailbox_address(runtime: RuntimeSettings = Depends(get_runtime_settings)):
    return MailboxAddressResponse(address=runtime.mailbox_address())


# ── PUT /api/settings/mailbox-address ───────────────────────────────────────
@router.put("/settings/mailbox-address", response_model=MailboxAddressResponse)
def update_mailbox_address(
    req: MailboxAddressUpdate,
    runtime: RuntimeSettings = Depends(get_runtime_settings),
):
    """Address our outbound invoice mails come from"""
    runtime.set(MAILBOX_ADDRESS, req.address.lower())
    logger.info("Mailbox address set to %s", req.address)
    return MailboxAddressResponse(address=runtime.mailbox_address())

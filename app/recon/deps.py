"""
FastAPI dependencies for the reconciliation routers.

Everything with an outside-world side effect (mailbox, OCR, settings
store) comes in through here so tests can swap it with
``app.dependency_overrides``.
"""
from typing import Iterator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.config import Settings, settings
from app.recon.database import get_db
from app.recon.mailbox import GmailMailbox, Mailbox
from app.recon.pipeline.amount import AmountExtractor
from app.recon.pipeline.ledger import ReconciliationLedger
from app.recon.pipeline.review import ReviewWorkflow
from app.recon.pipeline.text import build_extractor
from app.recon.runtime import Capabilities, RuntimeSettings


def get_settings() -> Settings:
    return settings


def get_mailbox(cfg: Settings = Depends(get_settings)) -> Iterator[Mailbox]:
    """Gmail mailbox for the duration of one request"""
    mailbox = GmailMailbox(
        access_token=cfg.GMAIL_ACCESS_TOKEN,
        address=cfg.MAILBOX_ADDRESS,
        refresh_token=cfg.GMAIL_REFRESH_TOKEN,
        client_id=cfg.GOOGLE_CLIENT_ID,
        client_secret=cfg.GOOGLE_CLIENT_SECRET,
        timeout=cfg.MAILBOX_TIMEOUT_SECONDS,
    )
    try:
        yield mailbox
    finally:
        mailbox.close()


def get_extractor(cfg: Settings = Depends(get_settings)) -> AmountExtractor:
    return build_extractor(cfg)


def get_runtime_settings(request: Request) -> RuntimeSettings:
    return request.app.state.runtime_settings


def get_capabilities(request: Request) -> Capabilities:
    return request.app.state.capabilities


def require_capability(name: str):
    def _check(capabilities: Capabilities = Depends(get_capabilities)) -> None:
        capabilities.require(name)
    return _check


def get_ledger(cfg: Settings = Depends(get_settings)) -> ReconciliationLedger:
    return ReconciliationLedger(
        allow_overpayment=cfg.ALLOW_OVERPAYMENT,
        max_retries=cfg.LEDGER_MAX_RETRIES,
    )


def get_current_user(x_user: Optional[str] = Header(default=None)) -> str:
    # TODO: replace the X-User header with real authentication
    return x_user or "default_user"


def get_workflow(
    db: Session = Depends(get_db),
    ledger: ReconciliationLedger = Depends(get_ledger),
    mailbox: Mailbox = Depends(get_mailbox),
    extractor: AmountExtractor = Depends(get_extractor),
    cfg: Settings = Depends(get_settings),
) -> ReviewWorkflow:
    return ReviewWorkflow(
        db,
        ledger,
        mailbox=mailbox,
        extractor=extractor,
        default_currency=cfg.DEFAULT_CURRENCY,
    )

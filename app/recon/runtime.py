"""
Runtime configuration service and capability flags.

``RuntimeSettings`` serves values an operator can change while the service
runs (stored in ``system_settings``), falling back to the environment. Each
instance keeps its own short-lived cache; the application creates one at
start-up and hands it to whoever needs it.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.recon.errors import CapabilityDisabled
from app.recon.models import SystemSettingModel

logger = logging.getLogger(__name__)

MAILBOX_ADDRESS = "MAILBOX_ADDRESS"


@dataclass(frozen=True)
class Capabilities:
    receipts: bool = True
    bank_credits: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> Capabilities:
        return cls(
            receipts=settings.RECEIPTS_ENABLED,
            bank_credits=settings.BANK_CREDITS_ENABLED,
        )

    def require(self, name: str) -> None:
        if not getattr(self, name):
            raise CapabilityDisabled(name)


class RuntimeSettings:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        defaults: Optional[Dict[str, str]] = None,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._defaults = defaults or {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[str, float]] = {}

    @classmethod
    def from_settings(cls, session_factory: Callable[[], Session], settings: Settings) -> RuntimeSettings:
        return cls(
            session_factory,
            defaults={MAILBOX_ADDRESS: settings.MAILBOX_ADDRESS},
            ttl_seconds=settings.RUNTIME_SETTINGS_TTL_SECONDS,
        )

    def _load(self, key: str) -> str:
        db = self._session_factory()
        try:
            row = db.get(SystemSettingModel, key)
            stored = row.value if row else ""
        except SQLAlchemyError as exc:
            logger.warning("Could not read setting %s, using default: %s", key, exc)
            stored = ""
        finally:
            db.close()
        return (stored or self._defaults.get(key, "")).strip()

    def get(self, key: str) -> str:
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[1] < self._ttl:
            return cached[0]
        value = self._load(key)
        self._cache[key] = (value, now)
        return value

    def set(self, key: str, value: str) -> str:
        value = value.strip()
        db = self._session_factory()
        try:
            row = db.get(SystemSettingModel, key)
            if row is None:
                db.add(SystemSettingModel(key=key, value=value))
            else:
                row.value = value
            db.commit()
        finally:
            db.close()
        self._cache[key] = (value, self._clock())
        logger.info("Setting %s updated", key)
        return value

    def mailbox_address(self) -> str:
        return self.get(MAILBOX_ADDRESS).lower()

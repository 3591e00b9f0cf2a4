"""
Gmail REST API mailbox.

Uses a bearer access token; when Gmail answers 401 and a refresh token is
configured, the token is refreshed once and the call retried.
"""
from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from app.recon.mailbox.base import (
    MailboxError,
    MailboxUnavailable,
    MailMessage,
    Mailbox,
    MessageNotFound,
    MessageSummary,
    MimePart,
)

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"


def decode_base64url(data: str) -> bytes:
    data = data or ""
    try:
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as exc:
        raise MailboxError(f"Malformed attachment payload: {exc}") from exc


def parse_part(payload: Dict[str, Any]) -> MimePart:
    body = payload.get("body") or {}
    return MimePart(
        mime_type=payload.get("mimeType", ""),
        filename=payload.get("filename", ""),
        attachment_id=body.get("attachmentId"),
        size=int(body.get("size") or 0),
        parts=[parse_part(p) for p in payload.get("parts") or []],
    )


def parse_message(data: Dict[str, Any]) -> MailMessage:
    try:
        return _parse_message(data)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MailboxError(f"Malformed Gmail message: {exc!r}") from exc


def _parse_message(data: Dict[str, Any]) -> MailMessage:
    payload = data.get("payload") or {}
    headers = {
        h["name"].lower(): h.get("value", "")
        for h in payload.get("headers") or []
        if h.get("name")
    }
    received_at = None
    if data.get("internalDate"):
        received_at = datetime.fromtimestamp(
            int(data["internalDate"]) / 1000, tz=timezone.utc
        ).replace(tzinfo=None)
    return MailMessage(
        id=data["id"],
        thread_id=data.get("threadId", ""),
        headers=headers,
        snippet=data.get("snippet", ""),
        label_ids=list(data.get("labelIds") or []),
        received_at=received_at,
        payload=parse_part(payload),
    )


class GmailMailbox(Mailbox):
    """
    Usage:
        mailbox = GmailMailbox(access_token="...", address="billing@example.com")
        messages = mailbox.search("has:attachment subject:INV-", window_days=45)
    """

    def __init__(
        self,
        access_token: str,
        address: str = "",
        refresh_token: str = "",
        client_id: str = "",
        client_secret: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.address = address
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._client = httpx.Client(
            base_url=GMAIL_API_BASE,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
        }

    def _refresh(self) -> bool:
        if not (self._refresh_token and self._client_id):
            return False
        payload = {
            "client_id": self._client_id,
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
        }
        if self._client_secret:
            payload["client_secret"] = self._client_secret
        try:
            response = self._client.post(OAUTH_TOKEN_URL, data=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Gmail token refresh failed: %s", exc)
            return False
        try:
            self._access_token = response.json()["access_token"]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Gmail token refresh returned no access token: %r", exc)
            return False
        logger.info("Refreshed Gmail access token")
        return True

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._client.get(path, headers=self._headers(), params=params)
            if response.status_code == 401 and self._refresh():
                response = self._client.get(path, headers=self._headers(), params=params)
        except httpx.TimeoutException as exc:
            raise MailboxUnavailable(f"Gmail timed out on {path}") from exc
        except httpx.TransportError as exc:
            raise MailboxUnavailable(f"Gmail unreachable: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise MailboxUnavailable(f"Gmail refused credentials ({status})")
        if status == 429 or status >= 500:
            raise MailboxUnavailable(f"Gmail unavailable ({status})")
        if status == 404:
            raise MessageNotFound(path)
        if status >= 400:
            raise MailboxError(f"Gmail error {status} on {path}")
        try:
            return response.json()
        except ValueError as exc:
            raise MailboxError(f"Gmail returned non-JSON body on {path}") from exc

    # ── Mailbox contract ─────────────────────────────────────────────────

    def search(self, query: str, window_days: int, max_results: int = 50) -> list[MessageSummary]:
        q = f"newer_than:{window_days}d {query}".strip()
        data = self._get_json("/users/me/messages", params={"q": q, "maxResults": max_results})
        return [
            MessageSummary(id=m["id"], thread_id=m.get("threadId", ""))
            for m in data.get("messages") or []
        ]

    def get(self, message_id: str) -> MailMessage:
        data = self._get_json(f"/users/me/messages/{message_id}", params={"format": "full"})
        return parse_message(data)

    def get_thread(self, thread_id: str) -> list[MailMessage]:
        data = self._get_json(f"/users/me/threads/{thread_id}")
        return [parse_message(m) for m in data.get("messages") or []]

    def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        data = self._get_json(f"/users/me/messages/{message_id}/attachments/{attachment_id}")
        return decode_base64url(data.get("data", ""))

"""
Mailbox provider contract.

The collector only talks to a mailbox through these four calls. Providers
raise ``MailboxUnavailable`` for provider-level failures (transport, auth,
throttling), which abort a sync pass, and ``MailboxError`` /
``MessageNotFound`` for failures scoped to one message, which the
collector skips.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class MailboxError(Exception):
    """A mailbox call failed for one message."""


class MessageNotFound(MailboxError):
    pass


class MailboxUnavailable(MailboxError):
    """The provider itself cannot be reached or refuses our credentials."""


@dataclass
class MessageSummary:
    id: str
    thread_id: str = ""
    subject: str = ""
    snippet: str = ""
    sender: str = ""


@dataclass
class MimePart:
    """A node in a message's MIME tree; leaves have no ``parts``."""
    mime_type: str = ""
    filename: str = ""
    attachment_id: Optional[str] = None
    size: int = 0
    parts: list[MimePart] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.parts


@dataclass
class MailMessage:
    id: str
    thread_id: str = ""
    headers: dict[str, str] = field(default_factory=dict)  # lower-cased names
    snippet: str = ""
    label_ids: list[str] = field(default_factory=list)
    received_at: Optional[datetime] = None
    payload: MimePart = field(default_factory=MimePart)

    @property
    def subject(self) -> str:
        return self.headers.get("subject", "")

    @property
    def sender(self) -> str:
        return self.headers.get("from", "")

    @property
    def reply_to(self) -> str:
        return self.headers.get("reply-to", "")


class Mailbox(abc.ABC):
    """Read-only view of the reconciling mailbox."""

    address: str = ""

    @abc.abstractmethod
    def search(self, query: str, window_days: int, max_results: int = 50) -> list[MessageSummary]:
        ...

    @abc.abstractmethod
    def get(self, message_id: str) -> MailMessage:
        ...

    @abc.abstractmethod
    def get_thread(self, thread_id: str) -> list[MailMessage]:
        ...

    @abc.abstractmethod
    def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        ...

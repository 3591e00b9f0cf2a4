from app.recon.mailbox.base import (  # noqa: F401
    MailboxError,
    MailboxUnavailable,
    MailMessage,
    Mailbox,
    MessageNotFound,
    MessageSummary,
    MimePart,
)
from app.recon.mailbox.gmail import GmailMailbox  # noqa: F401

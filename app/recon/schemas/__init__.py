from app.recon.schemas.evidence import (  # noqa: F401
    BankCreditMatchRequest,
    BankCreditResponse,
    ReceiptMatchRequest,
    ReceiptResponse,
    RejectRequest,
    SyncResponse,
    VerifyRequest,
)
from app.recon.schemas.invoice import (  # noqa: F401
    InvoiceResponse,
    MailboxAddressResponse,
    MailboxAddressUpdate,
    PaymentMatchResponse,
)

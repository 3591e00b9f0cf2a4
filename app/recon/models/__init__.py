from app.recon.models.evidence import (  # noqa: F401
    BankCreditModel,
    BankCreditStatus,
    ReceiptModel,
    ReceiptStatus,
)
from app.recon.models.invoice import (  # noqa: F401
    InvoiceModel,
    InvoiceStatus,
    PaymentMatchModel,
)
from app.recon.models.setting import SystemSettingModel  # noqa: F401

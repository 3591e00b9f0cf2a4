"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/recon.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # Mailbox (Gmail REST API)
    GMAIL_ACCESS_TOKEN: str = ""
    GMAIL_REFRESH_TOKEN: str = ""
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    MAILBOX_ADDRESS: str = ""  # our own address; outbound messages come from it
    MAILBOX_TIMEOUT_SECONDS: float = 15.0
    MAILBOX_MAX_RESULTS: int = 50

    # Collector windows
    SLIP_LOOKBACK_DAYS: int = 45
    BANK_LOOKBACK_DAYS: int = 14

    # Text extraction
    OCR_TIMEOUT_SECONDS: int = 30
    PDF_MAX_PAGES: int = 10

    # Ledger
    DEFAULT_CURRENCY: str = "USD"
    ALLOW_OVERPAYMENT: bool = True
    LEDGER_MAX_RETRIES: int = 3

    # Capabilities
    RECEIPTS_ENABLED: bool = True
    BANK_CREDITS_ENABLED: bool = True

    # Runtime settings cache
    RUNTIME_SETTINGS_TTL_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

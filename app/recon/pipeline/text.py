"""
Text providers for the amount extractor: pdfplumber for PDFs, Tesseract
OCR for images. Both may raise; the extractor treats any failure as
"no amount".
"""
from __future__ import annotations

import io
from functools import partial

import pdfplumber
import pytesseract
from PIL import Image

from app.config import Settings
from app.recon.pipeline.amount import AmountExtractor


def pdf_to_text(data: bytes, max_pages: int = 10) -> str:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages[:max_pages])


def image_to_text(data: bytes, timeout: int = 30) -> str:
    image = Image.open(io.BytesIO(data))
    # Tesseract wants an opaque image; flatten transparency onto white
    if image.mode in ("RGBA", "LA", "P"):
        image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        image = background
    return pytesseract.image_to_string(image, lang="eng", timeout=timeout)


def build_extractor(settings: Settings) -> AmountExtractor:
    return AmountExtractor(
        pdf_to_text=partial(pdf_to_text, max_pages=settings.PDF_MAX_PAGES),
        image_to_text=partial(image_to_text, timeout=settings.OCR_TIMEOUT_SECONDS),
    )

"""
OCR fallback for contact emails rendered as images.

Some profiles show the email address only as an image. ``OcrEngine``
downloads the image, runs Tesseract over it and returns the first valid
email address, or None. Nothing here raises: every failure means the
field is absent.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re

import pytesseract
from PIL import Image, UnidentifiedImageError

from profileharvest.core.backends.base import BackendError, RequestSpec
from profileharvest.core.backends.http_backend import HttpBackend
from profileharvest.core.config.models import OcrConfig

from .pool import LeasedResource

logger = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 100
MIN_EMAIL_LENGTH = 5
MAX_EMAIL_LENGTH = 100

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
EMAIL_FULL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

NOT_AVAILABLE_PATTERNS = [
    re.compile(r"^n/?a$", re.IGNORECASE),
    re.compile(r"^not\s*available$", re.IGNORECASE),
    re.compile(r"^none$", re.IGNORECASE),
    re.compile(r"^-+$"),
]


# =============================================================================
# Text Helpers
# =============================================================================


def clean_ocr_text(text: str | None) -> str:
    """Normalize raw OCR output before matching an email in it."""
    if not text:
        return ""
    cleaned = re.sub(r"\s+", "", text)
    cleaned = cleaned.replace("|", "l")
    cleaned = re.sub(r"0rg\b", "org", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"0m\b", "om", cleaned, flags=re.IGNORECASE)
    return cleaned.lower().strip()


def is_not_available(text: str | None) -> bool:
    """True if the image text is a placeholder such as 'N/A'."""
    if not text:
        return False
    cleaned = text.strip().lower()
    return any(pattern.match(cleaned) for pattern in NOT_AVAILABLE_PATTERNS)


def is_valid_email(email: str | None) -> bool:
    if not email:
        return False
    if not MIN_EMAIL_LENGTH <= len(email) <= MAX_EMAIL_LENGTH:
        return False
    return EMAIL_FULL_PATTERN.match(email) is not None


def extract_email(text: str | None) -> str | None:
    """First valid email in raw OCR text, or None."""
    if is_not_available(text):
        return None
    match = EMAIL_PATTERN.search(clean_ocr_text(text))
    if not match:
        return None
    email = match.group(0).lower().strip()
    return email if is_valid_email(email) else None


# =============================================================================
# Tesseract Worker
# =============================================================================


class TesseractWorker:
    """Recognizer bound to one language configuration."""

    def __init__(self, language: str = "eng", timeout: float = 15.0):
        self.language = language
        self.timeout = timeout
        self.recognized = 0

    def recognize(self, image_bytes: bytes) -> str:
        """Run Tesseract over an image (blocking)."""
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            text = pytesseract.image_to_string(
                image.convert("L"),
                lang=self.language,
                timeout=self.timeout,
            )
        self.recognized += 1
        return text or ""


# =============================================================================
# OCR Engine
# =============================================================================


class OcrEngine:
    """Best-effort email recovery from images.

    Owns a single Tesseract worker through a ``LeasedResource``; the worker
    is recycled after ``max_uses`` recognitions and released by ``close``.
    """

    def __init__(
        self,
        config: OcrConfig | None = None,
        *,
        backend: HttpBackend | None = None,
    ):
        self.config = config or OcrConfig()
        self.backend = backend or HttpBackend(timeout=self.config.fetch_timeout_seconds)
        self._owns_backend = backend is None
        self.pool: LeasedResource[TesseractWorker] = LeasedResource(
            self._create_worker,
            max_leases=self.config.max_uses,
            name="tesseract worker",
        )

    async def _create_worker(self) -> TesseractWorker:
        return TesseractWorker(
            language=self.config.language,
            timeout=self.config.recognize_timeout_seconds,
        )

    async def _download(self, image_url: str) -> bytes | None:
        request = RequestSpec(
            url=image_url,
            timeout=self.config.fetch_timeout_seconds,
            page_type="image",
        )
        result = await self.backend.fetch(request)
        if not result.ok or len(result.content) < MIN_IMAGE_BYTES:
            return None
        return result.content

    async def recover(self, image_url: str | None) -> str | None:
        """Return the email shown in the image at ``image_url``, or None."""
        if not image_url or not self.config.enabled:
            return None

        try:
            image_bytes = await self._download(image_url)
            if image_bytes is None:
                return None

            async with self.pool.lease() as worker:
                text = await asyncio.wait_for(
                    asyncio.to_thread(worker.recognize, image_bytes),
                    timeout=self.config.recognize_timeout_seconds,
                )
        except (BackendError, asyncio.TimeoutError) as e:
            logger.debug(f"OCR skipped for {image_url}: {e}")
            return None
        except (UnidentifiedImageError, OSError, RuntimeError, pytesseract.TesseractError) as e:
            logger.debug(f"OCR failed for {image_url}: {e}")
            return None

        email = extract_email(text)
        if email:
            logger.debug(f"Recovered email via OCR from {image_url}")
        return email

    async def close(self) -> None:
        await self.pool.release()
        if self._owns_backend:
            await self.backend.close()

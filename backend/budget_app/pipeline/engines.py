"""Recognition engines: a hosted vision model and local Tesseract OCR."""

from __future__ import annotations

import base64
import logging
import re
from io import BytesIO
from typing import Any

import pytesseract
from openai import OpenAI
from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import Settings, get_settings
from .recognition import RecognitionEngine, parse_json_object

logger = logging.getLogger(__name__)

RECOGNITION_PROMPT = (
    "Extract the transaction details from this image. "
    "Return ONLY a JSON object with fields: "
    "amount (number), merchant (string), category (string), date (YYYY-MM-DD), "
    "type ('expense' or 'income'), description (optional). "
    "Do not add any extra text."
)

FOOD_KEYWORDS = ("momo", "jhol momo", "food", "restaurant", "cafe")

_LABELLED_AMOUNT = re.compile(r"nu\.?\s*(\d+(?:[.,]\d{2})?)", re.IGNORECASE)
_PURPOSE = re.compile(r"purpose\s*:?\s*(.+)", re.IGNORECASE)
_DATE_LABEL = re.compile(r"date\s*:?\s*(.+)", re.IGNORECASE)
_DAY_MONTH_YEAR = re.compile(
    r"(\d{1,2})\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\s+(\d{4})", re.IGNORECASE
)


class OpenAIVisionEngine:
    """Ask a vision chat model for the transaction as a JSON object."""

    name = "openai"

    def __init__(self, *, api_key: str | None = None, model: str = "gpt-4o-mini", client: Any = None) -> None:
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise RuntimeError("OPENAI_API_KEY is not configured.")
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def complete(self, image: bytes, mime_type: str) -> str:
        encoded = base64.b64encode(image).decode("ascii")
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": RECOGNITION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                    ],
                }
            ],
            temperature=0,
        )
        content = (response.choices[0].message.content or "").strip()
        logger.info("Vision model output: %s", content)
        return content

    def extract_fields(self, image: bytes, mime_type: str) -> dict[str, Any] | None:
        return parse_json_object(self.complete(image, mime_type))


def _parse_amount(raw: str) -> float:
    return float(raw.replace(",", "."))


def parse_receipt_text(text: str) -> dict[str, Any] | None:
    """Pull amount, purpose and date out of OCR'd bank-transfer text."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None

    amount = 0.0
    merchant = ""
    date_text = ""

    for line in lines:
        lower = line.lower()

        if "amount" in lower and "nu." in lower:
            match = _LABELLED_AMOUNT.search(line)
            if match:
                amount = _parse_amount(match.group(1))

        if "purpose" in lower:
            match = _PURPOSE.search(line)
            if match:
                merchant = match.group(1).strip()

        if "date" in lower:
            match = _DATE_LABEL.search(line)
            if match:
                date_text = match.group(1).strip()

        if not amount and "a/c" not in lower:
            match = _LABELLED_AMOUNT.search(line)
            if match:
                candidate = _parse_amount(match.group(1))
                if 0 < candidate < 100_000:
                    amount = candidate

        if not merchant and any(keyword in lower for keyword in FOOD_KEYWORDS):
            merchant = line

        if not date_text and _DAY_MONTH_YEAR.search(line):
            date_text = line

    if amount <= 0:
        return None

    merchant = merchant or "Bank Transfer"
    return {
        "amount": amount,
        "merchant": merchant,
        "date": date_text or None,
        "description": f"Fund transfer - {merchant}",
    }


class TesseractEngine:
    """Run local OCR and parse the resulting text."""

    name = "tesseract"

    def __init__(self, *, language: str = "eng", config: str = "--psm 6 --oem 3") -> None:
        self.language = language
        self.config = config

    def read_text(self, image_bytes: bytes) -> str:
        try:
            image = Image.open(BytesIO(image_bytes))
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Unreadable image: {exc}") from exc

        if max(image.width, image.height) < 1600:
            scale = 1600 / max(image.width, image.height)
            image = image.resize(
                (int(image.width * scale), int(image.height * scale)),
                Image.Resampling.LANCZOS,
            )

        image = ImageOps.autocontrast(image.convert("L"))
        image = image.point(lambda x: 0 if x < 140 else 255, "1")

        text = pytesseract.image_to_string(image, lang=self.language, config=self.config)
        normalised = re.sub(r"[ \t]+", " ", text.replace("\r", "\n"))
        cleaned = "\n".join(line.strip() for line in normalised.split("\n") if line.strip())
        preview = cleaned if len(cleaned) <= 500 else f"{cleaned[:500]}…"
        logger.info("OCR extracted text: %s", preview)
        return cleaned

    def extract_fields(self, image: bytes, mime_type: str) -> dict[str, Any] | None:
        return parse_receipt_text(self.read_text(image))


def build_engine(settings: Settings | None = None) -> RecognitionEngine:
    settings = settings or get_settings()
    if settings.recognition_engine == "tesseract":
        return TesseractEngine()
    return OpenAIVisionEngine(api_key=settings.openai_api_key, model=settings.recognition_model)

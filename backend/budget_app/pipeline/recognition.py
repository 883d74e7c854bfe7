"""Turn a screenshot into a validated transaction guess.

The adapter never raises: engine errors and unusable output collapse into a
deterministic fallback whose amount is 0, which callers treat as "extraction
failed".
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Protocol

from ..domain.entities import ExtractedTransaction, Outcome, TransactionType

logger = logging.getLogger(__name__)

DEFAULT_MERCHANT = "Bank Transfer"
DEFAULT_CATEGORY = "Other"
FALLBACK_MERCHANT = "Transaction (OCR Failed)"

# Declared order is the tie-break: the first keyword found in the merchant wins.
CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("momo", "Food"),
    ("jhol momo", "Food"),
    ("jhol", "Food"),
    ("restaurant", "Food"),
    ("cafe", "Food"),
    ("food", "Food"),
    ("dining", "Food"),
    ("grocery", "Food"),
    ("supermarket", "Food"),
    ("thukpa", "Food"),
    ("ema datshi", "Food"),
    ("chow mein", "Food"),
    ("snack", "Food"),
    ("meal", "Food"),
    ("taxi", "Transportation"),
    ("bus", "Transportation"),
    ("fuel", "Transportation"),
    ("petrol", "Transportation"),
    ("parking", "Transportation"),
    ("transport", "Transportation"),
    ("vehicle", "Transportation"),
    ("shopping", "Shopping"),
    ("store", "Shopping"),
    ("market", "Shopping"),
    ("clothes", "Shopping"),
    ("electronics", "Shopping"),
    ("purchase", "Shopping"),
    ("electricity", "Bills"),
    ("water", "Bills"),
    ("internet", "Bills"),
    ("phone", "Bills"),
    ("mobile", "Bills"),
    ("bill", "Bills"),
    ("utility", "Bills"),
    ("transfer", "Transfer"),
    ("send money", "Transfer"),
    ("fund transfer", "Transfer"),
    ("beneficiary", "Transfer"),
    ("payment", "Transfer"),
    ("hospital", "Healthcare"),
    ("pharmacy", "Healthcare"),
    ("doctor", "Healthcare"),
    ("medical", "Healthcare"),
    ("movie", "Entertainment"),
    ("cinema", "Entertainment"),
    ("game", "Entertainment"),
    ("school", "Education"),
    ("college", "Education"),
    ("university", "Education"),
    ("book", "Education"),
    ("tuition", "Education"),
    ("salary", "Salary"),
    ("allowance", "Salary"),
    ("rent", "Housing"),
    ("loan", "Loan"),
    ("emi", "Loan"),
)

INCOME_KEYWORDS = ("salary", "allowance", "deposit", "credit")

_AMOUNT_PATTERN = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})[\s-]+([A-Za-z]{3,9})\.?,?[\s-]+(\d{4})\b")
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})(?!\d)")
_NUMERIC_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")


class RecognitionEngine(Protocol):
    """An external engine that reads transaction fields out of an image."""

    name: str

    def extract_fields(self, image: bytes, mime_type: str) -> dict[str, Any] | None:
        """Return the raw field mapping the engine produced, or ``None``."""


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse an engine reply that should contain exactly one JSON object."""
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as exc:
            logger.warning("Engine output is not valid JSON: %s", exc)
            return None
    return data if isinstance(data, dict) else None


def improve_category(merchant: str | None, extracted_category: str | None) -> str:
    """Map a merchant or purpose string onto a budget category."""
    fallback = (extracted_category or "").strip() or DEFAULT_CATEGORY
    if not merchant:
        return fallback
    lowered = merchant.lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in lowered:
            return category
    return fallback


def determine_transaction_type(merchant: str | None, category: str) -> TransactionType:
    if category == "Salary":
        return "income"
    lowered = (merchant or "").lower()
    if any(keyword in lowered for keyword in INCOME_KEYWORDS):
        return "income"
    return "expense"


def parse_transaction_date(value: object) -> date | None:
    """Normalise ``18 Aug 2025``, ISO and day-first numeric dates."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()

    match = _DAY_MONTH_YEAR.search(text)
    if match:
        day, month_name, year = match.groups()
        try:
            return datetime.strptime(f"{day} {month_name[:3]} {year}", "%d %b %Y").date()
        except ValueError:
            pass

    match = _ISO_DATE.search(text)
    if match:
        try:
            return date(*(int(part) for part in match.groups()))
        except ValueError:
            pass

    for fmt in _NUMERIC_DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def coerce_amount(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        match = _AMOUNT_PATTERN.search(str(value))
        if not match:
            return None
        try:
            amount = float(match.group(0).replace(",", ""))
        except ValueError:
            return None
    if not math.isfinite(amount) or amount <= 0:
        return None
    return round(amount, 2)


def validate_transaction_data(data: object) -> ExtractedTransaction | None:
    """Check and normalise an engine's field mapping.

    Returns ``None`` when the mapping is unusable (no positive amount).
    """
    if not isinstance(data, dict):
        return None

    amount = coerce_amount(data.get("amount"))
    if amount is None:
        return None

    merchant = str(data.get("merchant") or "").strip() or DEFAULT_MERCHANT
    raw_category = data.get("category")
    category = improve_category(merchant, str(raw_category) if raw_category else None)
    tx_date = parse_transaction_date(data.get("date")) or date.today()
    description = str(data.get("description") or "").strip() or f"Fund transfer - {merchant}"

    return ExtractedTransaction(
        amount=amount,
        merchant=merchant,
        category=category,
        date=tx_date,
        type=determine_transaction_type(merchant, category),
        description=description,
    )


def create_fallback_transaction() -> ExtractedTransaction:
    return ExtractedTransaction(
        amount=0.0,
        merchant=FALLBACK_MERCHANT,
        category=DEFAULT_CATEGORY,
        date=date.today(),
        type="expense",
        description="Transaction - OCR extraction failed",
    )


class TransactionRecognizer:
    """Isolates the pipeline from the recognition engine and its failures."""

    def __init__(self, engine: RecognitionEngine) -> None:
        self.engine = engine

    def extract(self, image: bytes, mime_type: str = "image/jpeg") -> Outcome[ExtractedTransaction]:
        try:
            fields = self.engine.extract_fields(image, mime_type)
        except Exception as exc:  # noqa: BLE001
            logger.error("Recognition engine %s failed: %s", self.engine.name, exc)
            return Outcome.failed(exc, create_fallback_transaction())

        transaction = validate_transaction_data(fields)
        if transaction is None:
            logger.warning("Recognition engine %s returned unusable data: %s", self.engine.name, fields)
            return Outcome.degraded(create_fallback_transaction())

        logger.info("Extracted transaction via %s: %s", self.engine.name, transaction.to_dict())
        return Outcome.success(transaction)

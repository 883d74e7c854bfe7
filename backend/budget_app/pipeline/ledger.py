from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..domain.entities import ExtractedTransaction
from ..errors import LedgerWriteError, TransactionValidationError
from ..models import TransactionSource
from .duplicates import PIPELINE_NOTE_MARKER

logger = logging.getLogger(__name__)


def provenance_note(merchant: str | None) -> str:
    return f"{PIPELINE_NOTE_MARKER} for: {merchant}" if merchant else PIPELINE_NOTE_MARKER


def commit_transaction(db: Session, account_id: int, candidate: ExtractedTransaction) -> int:
    """Persist a pipeline-created transaction and return its id."""
    if candidate.amount <= 0:
        raise TransactionValidationError(f"Invalid transaction amount: {candidate.amount}")

    try:
        transaction = crud.create_transaction(
            db,
            account_id,
            amount=candidate.amount,
            date_=candidate.date,
            category=candidate.category,
            type_=candidate.type,
            merchant=candidate.merchant or "Unknown",
            notes=provenance_note(candidate.merchant),
            source=TransactionSource.WHATSAPP,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to save transaction for account %s: %s", account_id, exc)
        raise LedgerWriteError("Could not save the transaction.") from exc

    logger.info("Created transaction %s for account %s", transaction.id, account_id)
    return transaction.id

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..domain.entities import ExtractedTransaction
from ..models import TransactionModel, TransactionSource

logger = logging.getLogger(__name__)

PIPELINE_NOTE_MARKER = "Auto-added via WhatsApp"


def _merchants_overlap(existing: str | None, candidate: str | None) -> bool:
    if not existing or not candidate:
        return False
    existing_lower, candidate_lower = existing.lower(), candidate.lower()
    return existing_lower in candidate_lower or candidate_lower in existing_lower


def _created_by_pipeline(row: TransactionModel) -> bool:
    return row.source == TransactionSource.WHATSAPP or PIPELINE_NOTE_MARKER in (row.notes or "")


def is_duplicate(
    db: Session,
    account_id: int,
    candidate: ExtractedTransaction,
    *,
    window: timedelta = timedelta(hours=24),
    limit: int = 10,
    now: datetime | None = None,
) -> bool:
    """Return True when an equivalent transaction was recorded recently.

    Any same-amount, same-date row created by the pipeline inside the window
    counts, whatever its merchant. Query failures return False.
    """
    cutoff = (now or datetime.now(timezone.utc)) - window
    try:
        rows = crud.find_recent_matching_transactions(
            db,
            account_id,
            amount=candidate.amount,
            date_=candidate.date,
            created_after=cutoff,
            limit=limit,
        )
    except SQLAlchemyError as exc:
        logger.error("Duplicate check failed for account %s: %s", account_id, exc)
        db.rollback()
        return False

    for row in rows:
        if _merchants_overlap(row.merchant, candidate.merchant) or _created_by_pipeline(row):
            logger.info(
                "Transaction %s matches candidate %.2f on %s (merchant %r)",
                row.id,
                candidate.amount,
                candidate.date.isoformat(),
                candidate.merchant,
            )
            return True
    return False

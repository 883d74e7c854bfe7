from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..domain.entities import TransactionType
from ..models import CategoryModel

logger = logging.getLogger(__name__)

CATEGORY_COLORS: dict[str, str] = {
    "income": "#10b981",
    "expense": "#ef4444",
}


def ensure_category(db: Session, account_id: int, name: str, type_: TransactionType) -> CategoryModel | None:
    """Return the account's category, appending it at the end of the list if new.

    Failures are logged and yield ``None``; transactions reference categories
    by name, so the caller carries on regardless.
    """
    try:
        existing = crud.get_category(db, account_id, name, type_)
        if existing is not None:
            return existing

        order = crud.max_category_order(db, account_id, type_) + 1
        category = crud.create_category(
            db,
            account_id,
            name=name,
            type_=type_,
            color=CATEGORY_COLORS[type_],
            order=order,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to ensure category %r (%s) for account %s: %s", name, type_, account_id, exc)
        return None

    logger.info("Created category %r (%s) for account %s at position %s", name, type_, account_id, order)
    return category

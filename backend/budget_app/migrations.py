from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# table -> (column, column DDL) added to deployments created before the column existed
_ADDED_COLUMNS: dict[str, tuple[tuple[str, str], ...]] = {
    "users": (
        ("phone_number", "VARCHAR(32)"),
        ("whatsapp_enabled", "BOOLEAN NOT NULL DEFAULT FALSE"),
    ),
    "transactions": (
        ("merchant", "VARCHAR(255)"),
        ("notes", "TEXT"),
        ("source", "VARCHAR(16) NOT NULL DEFAULT 'MANUAL'"),
    ),
}


def _ensure_columns(engine: Engine, table: str, columns: tuple[tuple[str, str], ...]) -> list[str]:
    inspector = inspect(engine)
    try:
        existing = {column["name"] for column in inspector.get_columns(table)}
    except SQLAlchemyError as exc:  # pragma: no cover
        logger.error("Failed to inspect %s table: %s", table, exc)
        return []

    added: list[str] = []
    for name, ddl in columns:
        if name in existing:
            continue
        logger.info("Adding %s column to %s table.", name, table)
        try:
            with engine.begin() as connection:
                connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
        except SQLAlchemyError as exc:  # pragma: no cover
            logger.error("Failed to add %s column to %s: %s", name, table, exc)
            continue
        added.append(name)
    return added


def run_migrations(engine: Engine) -> dict[str, list[str]]:
    """Execute lightweight, idempotent migrations on application start."""
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    return {
        table: _ensure_columns(engine, table, columns)
        for table, columns in _ADDED_COLUMNS.items()
        if table in tables
    }

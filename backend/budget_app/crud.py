from datetime import date, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .models import (
    CategoryModel,
    ProcessedMessageModel,
    TransactionKind,
    TransactionModel,
    TransactionSource,
    UserModel,
)
from .schemas import TransactionType, UserRegister, WhatsAppSettingsUpdate


def create_user(db: Session, data: UserRegister, password_hash: str) -> UserModel:
    phone_number = data.phone_number.strip() if data.phone_number else None
    user = UserModel(
        name=data.name,
        username=data.username,
        email=data.email,
        password_hash=password_hash,
        phone_number=phone_number,
        whatsapp_enabled=bool(phone_number),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user_by_email(db: Session, email: str) -> UserModel | None:
    return db.scalar(select(UserModel).where(UserModel.email == email))


def get_user_by_username(db: Session, username: str) -> UserModel | None:
    return db.scalar(select(UserModel).where(UserModel.username == username))


def list_users(db: Session) -> list[UserModel]:
    return list(db.scalars(select(UserModel).order_by(UserModel.id)))


def list_whatsapp_enabled_users(db: Session) -> list[UserModel]:
    stmt = (
        select(UserModel)
        .where(UserModel.whatsapp_enabled.is_(True), UserModel.phone_number.is_not(None))
        .order_by(UserModel.id)
    )
    return list(db.scalars(stmt))


def update_whatsapp_settings(db: Session, user: UserModel, data: WhatsAppSettingsUpdate) -> UserModel:
    phone_number = data.phone_number.strip() if data.phone_number else None
    user.phone_number = phone_number
    user.whatsapp_enabled = bool(phone_number) and data.whatsapp_enabled
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_category(db: Session, user_id: int, name: str, type_: TransactionType) -> CategoryModel | None:
    stmt = select(CategoryModel).where(
        CategoryModel.user_id == user_id,
        CategoryModel.name == name,
        CategoryModel.kind == TransactionKind(type_),
    )
    return db.scalars(stmt).first()


def max_category_order(db: Session, user_id: int, type_: TransactionType) -> int:
    stmt = select(func.max(CategoryModel.order)).where(
        CategoryModel.user_id == user_id,
        CategoryModel.kind == TransactionKind(type_),
    )
    return db.scalar(stmt) or 0


def create_category(
    db: Session,
    user_id: int,
    name: str,
    type_: TransactionType,
    color: str,
    order: int,
) -> CategoryModel:
    category = CategoryModel(
        user_id=user_id,
        name=name,
        kind=TransactionKind(type_),
        color=color,
        order=order,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def list_categories(db: Session, user_id: int, type_: TransactionType | None = None) -> list[CategoryModel]:
    stmt = select(CategoryModel).where(CategoryModel.user_id == user_id)
    if type_:
        stmt = stmt.where(CategoryModel.kind == TransactionKind(type_))
    return list(db.scalars(stmt.order_by(CategoryModel.kind, CategoryModel.order)))


def create_transaction(
    db: Session,
    user_id: int,
    *,
    amount: float,
    date_: date,
    category: str,
    type_: TransactionType,
    merchant: str | None,
    notes: str | None,
    source: TransactionSource = TransactionSource.MANUAL,
) -> TransactionModel:
    transaction = TransactionModel(
        user_id=user_id,
        amount=amount,
        date=date_,
        category=category,
        kind=TransactionKind(type_),
        merchant=merchant,
        notes=notes,
        source=source,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def find_recent_matching_transactions(
    db: Session,
    user_id: int,
    *,
    amount: float,
    date_: date,
    created_after: datetime,
    limit: int,
) -> list[TransactionModel]:
    stmt = (
        select(TransactionModel)
        .where(
            TransactionModel.user_id == user_id,
            TransactionModel.amount == amount,
            TransactionModel.date == date_,
            TransactionModel.created_at >= created_after,
        )
        .order_by(TransactionModel.created_at.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def list_transactions(db: Session, user_id: int) -> list[TransactionModel]:
    stmt = (
        select(TransactionModel)
        .where(TransactionModel.user_id == user_id)
        .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
    )
    return list(db.scalars(stmt))


def count_transactions(db: Session, user_id: int) -> int:
    return db.scalar(select(func.count(TransactionModel.id)).where(TransactionModel.user_id == user_id)) or 0


def delete_processed_message(db: Session, key: str, processed_before: datetime | None = None) -> int:
    stmt = delete(ProcessedMessageModel).where(ProcessedMessageModel.key == key)
    if processed_before is not None:
        stmt = stmt.where(ProcessedMessageModel.processed_at < processed_before)
    result = db.execute(stmt)
    return result.rowcount or 0


def insert_processed_message(db: Session, key: str, processed_at: datetime) -> None:
    db.add(ProcessedMessageModel(key=key, processed_at=processed_at))
    db.commit()

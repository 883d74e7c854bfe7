from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Generic, Literal, TypeVar

TransactionType = Literal["income", "expense"]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Account:
    """An account that owns a registered messaging number."""

    id: int
    phone_number: str | None
    whatsapp_enabled: bool = True


@dataclass(frozen=True, slots=True)
class ExtractedTransaction:
    """Best-effort transaction guess produced from a screenshot."""

    amount: float
    merchant: str
    category: str
    date: date
    type: TransactionType
    description: str | None = None

    @property
    def is_usable(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "amount": self.amount,
            "merchant": self.merchant,
            "category": self.category,
            "date": self.date.isoformat(),
            "type": self.type,
            "description": self.description,
        }


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Result of a best-effort external call.

    ``DEGRADED`` and ``FAILED`` may still carry a value (a deterministic
    fallback); ``error`` holds the exception that caused a failure.
    """

    status: OutcomeStatus
    value: T | None = None
    error: BaseException | None = field(default=None, compare=False)

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(OutcomeStatus.SUCCESS, value)

    @classmethod
    def degraded(cls, value: T | None, error: BaseException | None = None) -> Outcome[T]:
        return cls(OutcomeStatus.DEGRADED, value, error)

    @classmethod
    def failed(cls, error: BaseException, value: T | None = None) -> Outcome[T]:
        return cls(OutcomeStatus.FAILED, value, error)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

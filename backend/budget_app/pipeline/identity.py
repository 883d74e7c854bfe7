"""Map a sender's messaging address to the account that registered it.

Users type their phone number into the app in whatever shape they like
(``17773326``, ``+975 17 77 33 26``, ``97517773326``), while the transport
always presents the full international digit string. The resolver bridges the
two by generating the plausible stored spellings of the inbound address and,
failing an exact hit, comparing digits-only forms.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..config import Settings, get_settings
from ..domain.entities import Account

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


class PhoneNumberResolver:
    """Resolve channel-native addresses against registered phone numbers."""

    def __init__(
        self,
        *,
        country_code: str,
        local_length: int,
        mobile_prefixes: Sequence[str],
        default_country_code: str,
        default_national_length: int,
    ) -> None:
        self.country_code = country_code
        self.local_length = local_length
        self.mobile_prefixes = tuple(mobile_prefixes)
        self.default_country_code = default_country_code
        self.default_national_length = default_national_length

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PhoneNumberResolver:
        settings = settings or get_settings()
        return cls(
            country_code=settings.phone_country_code,
            local_length=settings.phone_local_length,
            mobile_prefixes=settings.phone_mobile_prefixes,
            default_country_code=settings.phone_default_country_code,
            default_national_length=settings.phone_default_national_length,
        )

    @property
    def full_length(self) -> int:
        return len(self.country_code) + self.local_length

    def candidate_formats(self, raw_address: str) -> list[str]:
        """Return the stored spellings worth trying, most literal first."""
        trimmed = raw_address.strip()
        clean = digits_only(trimmed)

        formats: list[str] = [trimmed, f"+{trimmed}"]
        if trimmed.startswith("+"):
            formats.append(trimmed[1:].strip())

        if len(clean) == self.full_length and clean.startswith(self.country_code):
            local_part = clean[len(self.country_code):]
            formats.extend(
                [
                    clean,
                    f"+{clean}",
                    local_part,
                    f"+{self.country_code}{local_part}",
                    f"{self.country_code}{local_part}",
                ]
            )
        elif len(clean) == self.local_length and clean.startswith(self.mobile_prefixes):
            formats.extend(
                [
                    clean,
                    f"+{clean}",
                    f"{self.country_code}{clean}",
                    f"+{self.country_code}{clean}",
                ]
            )
        elif len(clean) >= self.default_national_length:
            formats.extend([clean, f"+{clean}"])
            if len(clean) == self.default_national_length:
                formats.append(f"+{self.default_country_code}{clean}")

        return list(_unique(format_ for format_ in formats if format_))

    def resolve(self, db: Session, raw_address: str) -> Account | None:
        """Return the owning account for ``raw_address`` or ``None``.

        Store failures are logged and reported as no match.
        """
        clean = digits_only(raw_address)
        if not clean:
            logger.warning("Cannot resolve empty sender address %r", raw_address)
            return None

        try:
            registered = crud.list_whatsapp_enabled_users(db)
        except SQLAlchemyError as exc:
            logger.error("Failed to load registered phone numbers: %s", exc)
            return None

        if not registered:
            logger.info("No WhatsApp-enabled accounts registered")
            return None

        by_number: dict[str, Account] = {}
        for user in registered:
            by_number.setdefault(
                user.phone_number,
                Account(id=user.id, phone_number=user.phone_number, whatsapp_enabled=user.whatsapp_enabled),
            )

        formats = self.candidate_formats(raw_address)
        for format_ in formats:
            account = by_number.get(format_)
            if account is not None:
                logger.info("Resolved %s to account %s via format %r", raw_address, account.id, format_)
                return account

        for account in by_number.values():
            if self._digits_match(clean, digits_only(account.phone_number)):
                logger.info(
                    "Resolved %s to account %s via digits match against %r",
                    raw_address,
                    account.id,
                    account.phone_number,
                )
                return account

        logger.warning("No account registered for %s (tried %s)", raw_address, formats)
        return None

    def _digits_match(self, inbound: str, stored: str) -> bool:
        if not stored:
            return False
        if stored == inbound:
            return True
        if inbound not in stored and stored not in inbound:
            return False
        if len(inbound) == self.full_length and len(stored) == self.local_length:
            return inbound.endswith(stored)
        if len(inbound) == self.local_length and len(stored) == self.full_length:
            return stored.endswith(inbound)
        return False


def _unique(values: Iterable[str]) -> Iterable[str]:
    seen: set[str] = set()
    for value in values:
        if value not in seen:
            seen.add(value)
            yield value
